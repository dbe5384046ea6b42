"""Fakes for the file store and AI client collaborators."""

import io
import json

from PIL import Image

from histdocs.errors import NotFound
from histdocs.models.analysis import FileContent, FileMetadata


def make_png(size: tuple[int, int] = (4, 4), color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def analysis_json(**overrides: object) -> str:
    data: dict[str, object] = {
        "documentType": "letter",
        "title": "Letter from the Front",
        "content": "Dear Mary, the weather at Verdun is dreadful.",
        "entities": [
            {"name": "John Smith", "type": "person"},
            {"name": "Verdun", "type": "location"},
            {"name": "1916-03-02", "type": "date"},
        ],
    }
    data.update(overrides)
    return json.dumps(data)


class FakeFileStore:
    """In-memory file store that counts calls."""

    def __init__(self, files: dict[str, tuple[bytes, str]] | None = None) -> None:
        self.files = files or {}
        self.content_calls: list[str] = []
        self.metadata_calls: list[str] = []

    def add(self, file_id: str, data: bytes, mime_type: str = "image/png") -> None:
        self.files[file_id] = (data, mime_type)

    async def get_content(self, file_id: str) -> FileContent:
        self.content_calls.append(file_id)
        if file_id not in self.files:
            raise NotFound(f"File not found: {file_id}")
        data, mime_type = self.files[file_id]
        return FileContent(data=data, mime_type=mime_type)

    async def get_metadata(self, file_id: str) -> FileMetadata:
        self.metadata_calls.append(file_id)
        if file_id not in self.files:
            raise NotFound(f"File not found: {file_id}")
        data, mime_type = self.files[file_id]
        return FileMetadata(name=file_id.rsplit("/", 1)[-1], mime_type=mime_type, size=len(data))


class FakeAIClient:
    """Returns canned answers and records every image it was asked about."""

    def __init__(self, answer: str | None = None, error: Exception | None = None) -> None:
        self.answer = answer if answer is not None else analysis_json()
        self.error = error
        self.calls: list[str] = []

    async def classify(self, image_url: str) -> str:
        self.calls.append(image_url)
        if self.error is not None:
            raise self.error
        return self.answer


