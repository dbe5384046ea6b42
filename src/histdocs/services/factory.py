"""Factory functions for creating and wiring processing services.

Provides a production factory that uses persistent storage and the HTTP
classifier, and a test factory that uses an in-memory database with
caller-supplied collaborators for fast, isolated testing.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from histdocs.config import Settings
from histdocs.services.ai_client import OpenAIVisionClient
from histdocs.services.analysis import ANALYSIS_TTL_SECONDS, IMAGE_TTL_SECONDS, AnalysisOrchestrator
from histdocs.services.cache import TTLCache
from histdocs.services.converter import ImageConverter
from histdocs.services.document_store import (
    DEFAULT_BUSY_TIMEOUT_SECONDS,
    DocumentStore,
    create_async_engine_from_path,
)
from histdocs.services.entity_resolver import EntityResolver
from histdocs.services.file_store import LocalFileStore
from histdocs.services.interfaces import AIClient, FileStore
from histdocs.services.jobs import DEFAULT_RETENTION, JobTracker
from histdocs.services.persistence import PersistenceCoordinator
from histdocs.services.processing import DocumentProcessingService


def create_processing_service(
    settings: Settings,
    file_store: FileStore | None = None,
    ai_client: AIClient | None = None,
) -> DocumentProcessingService:
    """Create a production DocumentProcessingService.

    Args:
        settings: Database location, classifier endpoint and cache TTLs.
        file_store: Overrides the directory-backed store under
            ``settings.files_root``.
        ai_client: Overrides the OpenAI-compatible classifier.

    Returns:
        Configured DocumentProcessingService ready for use.
    """
    logger = structlog.get_logger(__name__)

    if settings.db_path != ":memory:":
        Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)

    return _wire(
        db_path=settings.db_path,
        busy_timeout=settings.db_busy_timeout,
        file_store=file_store or LocalFileStore(root=settings.files_root, logger=logger),
        ai_client=ai_client
        or OpenAIVisionClient(
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout,
            logger=logger,
        ),
        analysis_ttl=settings.analysis_ttl,
        image_ttl=settings.image_ttl,
        retention=timedelta(hours=settings.job_retention_hours),
        logger=logger,
    )


def create_test_processing_service(
    file_store: FileStore,
    ai_client: AIClient,
    converter: ImageConverter | None = None,
    cache: TTLCache | None = None,
    clock: Callable[[], datetime] | None = None,
) -> DocumentProcessingService:
    """Create a DocumentProcessingService with in-memory storage for testing.

    Each call creates an independent database, so tests don't interfere.
    """
    return _wire(
        db_path=":memory:",
        file_store=file_store,
        ai_client=ai_client,
        converter=converter,
        cache=cache,
        clock=clock,
        logger=structlog.get_logger(__name__),
    )


def _wire(
    db_path: str,
    file_store: FileStore,
    ai_client: AIClient,
    logger: structlog.stdlib.BoundLogger,
    converter: ImageConverter | None = None,
    cache: TTLCache | None = None,
    analysis_ttl: float = ANALYSIS_TTL_SECONDS,
    image_ttl: float = IMAGE_TTL_SECONDS,
    retention: timedelta = DEFAULT_RETENTION,
    clock: Callable[[], datetime] | None = None,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
) -> DocumentProcessingService:
    engine = create_async_engine_from_path(db_path, busy_timeout=busy_timeout)
    store = DocumentStore(engine=engine, logger=logger)
    if cache is None:
        cache = TTLCache(logger=logger)

    orchestrator = AnalysisOrchestrator(
        file_store=file_store,
        ai_client=ai_client,
        cache=cache,
        converter=converter or ImageConverter(logger=logger),
        analysis_ttl=analysis_ttl,
        image_ttl=image_ttl,
        logger=logger,
    )
    coordinator = PersistenceCoordinator(
        store=store,
        resolver=EntityResolver(logger=logger),
        logger=logger,
    )
    tracker = JobTracker(
        orchestrator=orchestrator,
        coordinator=coordinator,
        retention=retention,
        clock=clock,
        logger=logger,
    )
    return DocumentProcessingService(
        store=store,
        orchestrator=orchestrator,
        coordinator=coordinator,
        tracker=tracker,
        cache=cache,
        logger=logger,
    )
