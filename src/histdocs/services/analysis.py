"""Analysis orchestrator: fetch, convert, classify, parse and cache.

Produces an AnalysisResult for a stored file. Results and intermediate
images are memoized in a TTLCache under independent key families.
"""

import asyncio
from collections.abc import Callable

import structlog

from histdocs.errors import AnalysisFailed, ConversionFailed, OperationCancelled, describe
from histdocs.models.analysis import AnalysisResult, SourceFile
from histdocs.models.base import utc_now
from histdocs.services.cache import TTLCache, analysis_key, image_key
from histdocs.services.converter import ImageConverter
from histdocs.services.interfaces import AIClient, FileStore
from histdocs.services.parser import parse_analysis

ANALYSIS_TTL_SECONDS = 3600
IMAGE_TTL_SECONDS = 7200

Checkpoint = Callable[[str], None]


class AnalysisOrchestrator:
    """Runs the fetch → convert → classify → parse sequence for one file.

    All dependencies are injected via constructor for testability. Nothing
    is retried at this layer.
    """

    def __init__(
        self,
        file_store: FileStore,
        ai_client: AIClient,
        cache: TTLCache,
        converter: ImageConverter | None = None,
        analysis_ttl: float = ANALYSIS_TTL_SECONDS,
        image_ttl: float = IMAGE_TTL_SECONDS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._file_store = file_store
        self._ai_client = ai_client
        self._cache = cache
        self._converter = converter or ImageConverter(logger=logger)
        self._analysis_ttl = analysis_ttl
        self._image_ttl = image_ttl
        self._logger = logger or structlog.get_logger(__name__)

    async def analyze(
        self,
        file_id: str,
        force_refresh: bool = False,
        checkpoint: Checkpoint | None = None,
    ) -> AnalysisResult:
        """Analyze a stored file.

        Args:
            file_id: Id of the file in the file store.
            force_refresh: Skip both the analysis and the image cache.
            checkpoint: Called with a stage name at each I/O boundary
                (``fetched``, ``converted``, ``classifying``). It may raise
                OperationCancelled to stop the run.

        Returns:
            The AnalysisResult, freshly computed or from cache.

        Raises:
            AnalysisFailed: If any step fails; the original message is kept.
            OperationCancelled: If the checkpoint stopped the run.
        """
        key = analysis_key(file_id)
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                self._logger.info("analysis_cache_hit", file_id=file_id)
                return cached

        self._logger.info("analysis_started", file_id=file_id, force_refresh=force_refresh)
        notify = checkpoint or _no_checkpoint

        try:
            content, metadata = await asyncio.gather(
                self._file_store.get_content(file_id),
                self._file_store.get_metadata(file_id),
            )
            source = SourceFile.from_parts(file_id, content, metadata)
            notify("fetched")

            image_url = await self._convert(source, force_refresh)
            notify("converted")

            notify("classifying")
            raw_text = await self._ai_client.classify(image_url)
            parsed = parse_analysis(raw_text)
        except OperationCancelled:
            raise
        except Exception as e:
            self._logger.error("analysis_failed", file_id=file_id, error=describe(e))
            raise AnalysisFailed(f"Failed to analyze document: {describe(e)}", cause=e) from e

        result = AnalysisResult(
            analysis=parsed,
            image_url=image_url,
            file_name=source.name,
            file_id=file_id,
            processed_at=utc_now(),
        )
        self._cache.set(key, result, self._analysis_ttl)

        self._logger.info(
            "analysis_completed",
            file_id=file_id,
            document_type=parsed.document_type.value,
            entity_count=len(parsed.entities),
        )
        return result

    async def _convert(self, source: SourceFile, force_refresh: bool) -> str:
        """Convert a file to an image URL, memoized per file id and MIME type."""
        key = image_key(source.file_id, source.mime_type)
        if not force_refresh:
            cached = self._cache.get(key)
            if isinstance(cached, str):
                self._logger.debug("image_cache_hit", file_id=source.file_id)
                return cached

        self._logger.info("image_conversion_started", file_id=source.file_id, file_name=source.name)
        try:
            image_url = await self._converter.convert(source)
        except ConversionFailed:
            raise
        except Exception as e:
            raise ConversionFailed(f"Failed to convert document to image: {describe(e)}", cause=e) from e

        self._cache.set(key, image_url, self._image_ttl)
        return image_url


def _no_checkpoint(stage: str) -> None:
    return None
