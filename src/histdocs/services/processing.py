"""Document processing service: the entry point callers use.

Bundles the analysis orchestrator, persistence coordinator, job tracker and
document store behind one object. Every method raises the typed errors from
histdocs.errors; mapping them to transport codes is the caller's job.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from histdocs.errors import ValidationFailed
from histdocs.models.analysis import AnalysisResult
from histdocs.models.document import Document, DocumentCreate, DocumentPatch
from histdocs.models.entity import Entity
from histdocs.models.enums import EntityType
from histdocs.models.job import JobOptions, ProcessingJob
from histdocs.services.analysis import AnalysisOrchestrator
from histdocs.services.cache import TTLCache
from histdocs.services.document_store import DocumentStore
from histdocs.services.jobs import JobTracker
from histdocs.services.persistence import PersistenceCoordinator


class DocumentProcessingService:
    """Analyze, save and track documents.

    Usable as an async context manager: the database schema is created on
    entry and the engine disposed on exit.
    """

    def __init__(
        self,
        store: DocumentStore,
        orchestrator: AnalysisOrchestrator,
        coordinator: PersistenceCoordinator,
        tracker: JobTracker,
        cache: TTLCache,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._coordinator = coordinator
        self._tracker = tracker
        self._cache = cache
        self._logger = logger or structlog.get_logger(__name__)

    async def __aenter__(self) -> "DocumentProcessingService":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def initialize(self) -> None:
        await self._store.initialize_schema()

    async def close(self) -> None:
        await self._tracker.wait()
        await self._store.dispose()

    async def analyze(self, file_id: str, force_refresh: bool = False) -> AnalysisResult:
        return await self._orchestrator.analyze(file_id, force_refresh=force_refresh)

    async def save(self, payload: DocumentCreate | Mapping[str, Any]) -> Document:
        return await self._coordinator.save(payload)

    async def get_document(self, document_id: str) -> Document:
        return await self._store.get_document(document_id)

    async def update_document(self, document_id: str, patch: DocumentPatch | Mapping[str, Any]) -> Document:
        if not isinstance(patch, DocumentPatch):
            try:
                patch = DocumentPatch.model_validate(patch)
            except ValidationError as e:
                raise ValidationFailed([err["msg"] for err in e.errors()]) from e
        return await self._store.update_document(document_id, patch)

    async def delete_document(self, document_id: str) -> None:
        await self._store.delete_document(document_id)

    async def get_entity(self, entity_id: str) -> Entity:
        return await self._store.get_entity(entity_id)

    async def find_documents_by_entity(self, entity_id: str, limit: int | None = None) -> list[Document]:
        return await self._store.find_documents_by_entity(entity_id, limit=limit)

    async def find_entities_by_type(self, entity_type: EntityType | str) -> list[Entity]:
        return await self._store.find_entities_by_type(entity_type)

    async def stats(self) -> dict[str, dict[str, int]]:
        """Document and entity counts per type."""
        return {
            "documents": await self._store.count_documents_by_type(),
            "entities": await self._store.count_entities_by_type(),
        }

    async def submit_job(
        self,
        file_id: str,
        auto_save: bool = False,
        force_refresh: bool = False,
    ) -> str:
        options = JobOptions(auto_save=auto_save, force_refresh=force_refresh)
        return await self._tracker.submit(file_id, options)

    def job_status(self, job_id: str) -> ProcessingJob:
        return self._tracker.status(job_id)

    def cancel_job(self, job_id: str) -> ProcessingJob:
        return self._tracker.cancel(job_id)

    async def wait_for_jobs(self, job_id: str | None = None) -> None:
        await self._tracker.wait(job_id)

    def sweep_jobs(self) -> int:
        """Drop expired jobs and expired cache entries."""
        removed = self._tracker.sweep()
        self._cache.sweep()
        return removed

    async def cleanup_orphaned_entities(self) -> int:
        return await self._store.delete_orphaned_entities()
