"""Vision classifier backed by an OpenAI-compatible chat completions API."""

import httpx
import structlog

from histdocs.models.enums import DocumentType, EntityType

ANALYSIS_PROMPT = (
    "You are an archivist analysing a scanned historical document.\n"
    "Classify the document and extract its text and named entities.\n"
    "Answer with a single JSON object and nothing else, using this shape:\n"
    '{"documentType": "<type>", "title": "<short title>", '
    '"content": "<transcribed or summarised text>", '
    '"entities": [{"name": "<name>", "type": "<entity type>"}]}\n'
    f"documentType must be one of: {', '.join(t.value for t in DocumentType)}.\n"
    f"Entity type must be one of: {', '.join(t.value for t in EntityType)}.\n"
    "Write dates as YYYY-MM-DD where the day is known."
)


class OpenAIVisionClient:
    """Sends an image to a vision model and returns its raw text answer.

    Works with any endpoint that implements the OpenAI ``/chat/completions``
    request shape with ``image_url`` content parts.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        max_tokens: int = 2000,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._transport = transport
        self._logger = logger or structlog.get_logger(__name__)

    def _url(self) -> str:
        return f"{self._base_url.rstrip('/')}/chat/completions"

    async def classify(self, image_url: str) -> str:
        """Classify an image.

        Args:
            image_url: HTTP(S) or data URL of the image.

        Returns:
            The message text of the first completion choice.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            ValueError: If the response carries no message text.
        """
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": ANALYSIS_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        self._logger.debug("classification_requested", model=self._model)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url(), json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected response format: {data}") from e
        if not isinstance(text, str) or not text.strip():
            raise ValueError("Classifier returned an empty answer")
        return text
