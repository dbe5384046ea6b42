"""Unit tests for DocumentProcessingService wired with in-memory storage."""

from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone

import pytest

from histdocs.errors import InvalidTransition, NotFound, ValidationFailed
from histdocs.models.enums import JobStatus
from histdocs.services.cache import TTLCache
from histdocs.services.factory import create_test_processing_service
from histdocs.services.processing import DocumentProcessingService
from tests.fakes import FakeAIClient, FakeFileStore


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(1918, 11, 11, 11, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def service(
    file_store: FakeFileStore, ai_client: FakeAIClient, clock: FakeClock
) -> AsyncIterator[DocumentProcessingService]:
    async with create_test_processing_service(file_store=file_store, ai_client=ai_client, clock=clock) as svc:
        yield svc


def _letter(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "title": "Letter from the Front",
        "fileName": "l1.pdf",
        "content": "Dear Mary",
        "documentType": "letter",
        "entities": [
            {"name": "John Smith", "type": "person"},
            {"name": "john smith", "type": "person"},
        ],
    }
    data.update(overrides)
    return data


class TestDocuments:
    async def test_save_deduplicates_entities_in_payload(self, service: DocumentProcessingService) -> None:
        document = await service.save(_letter())

        assert len(document.entities) == 1
        assert document.entities[0].name == "John Smith"
        assert (await service.get_document(document.document_id)) == document

    async def test_analyze_then_save_result(self, service: DocumentProcessingService) -> None:
        result = await service.analyze("letters/l1.png")

        document = await service.save(result.to_payload())

        assert document.title == result.analysis.title
        assert document.image_url == result.image_url
        assert {e.entity_type.value for e in document.entities} == {"person", "location", "date"}

    async def test_update_document_accepts_mapping(self, service: DocumentProcessingService) -> None:
        document = await service.save(_letter())

        updated = await service.update_document(
            document.document_id,
            {"documentType": "photo", "imageUrl": "https://example.org/l1.png"},
        )

        assert updated.document_type == "photo"
        assert updated.image_url == "https://example.org/l1.png"

    async def test_update_document_rejects_unknown_type(self, service: DocumentProcessingService) -> None:
        document = await service.save(_letter())

        with pytest.raises(ValidationFailed):
            await service.update_document(document.document_id, {"documentType": "telegram"})

    async def test_delete_then_prune_orphans(self, service: DocumentProcessingService) -> None:
        document = await service.save(_letter())

        await service.delete_document(document.document_id)

        with pytest.raises(NotFound):
            await service.get_document(document.document_id)
        assert await service.cleanup_orphaned_entities() == 1


class TestJobs:
    async def test_submit_and_wait(self, service: DocumentProcessingService) -> None:
        job_id = await service.submit_job("letters/l1.png", auto_save=True)
        await service.wait_for_jobs(job_id)

        job = service.job_status(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.options.auto_save is True
        assert job.result is not None and job.result.saved_document is not None

        with pytest.raises(InvalidTransition):
            service.cancel_job(job_id)

    async def test_cancel_job(self, service: DocumentProcessingService) -> None:
        job_id = await service.submit_job("letters/l1.png")

        assert service.cancel_job(job_id).status == JobStatus.CANCELLED
        await service.wait_for_jobs()
        assert service.job_status(job_id).status == JobStatus.CANCELLED

    async def test_sweep_jobs_drops_old_jobs(self, service: DocumentProcessingService, clock: FakeClock) -> None:
        job_id = await service.submit_job("letters/l1.png")
        await service.wait_for_jobs()
        clock.now += timedelta(hours=24, seconds=1)

        assert service.sweep_jobs() == 1
        with pytest.raises(NotFound):
            service.job_status(job_id)


async def test_sweep_jobs_also_sweeps_cache(file_store: FakeFileStore, ai_client: FakeAIClient) -> None:
    now = [0.0]
    cache = TTLCache(clock=lambda: now[0])
    async with create_test_processing_service(file_store=file_store, ai_client=ai_client, cache=cache) as service:
        await service.analyze("letters/l1.png")
        assert len(cache) == 2

        now[0] += 3600
        service.sweep_jobs()

        assert len(cache) == 1


class TestEntities:
    async def test_entity_with_linked_documents(self, service: DocumentProcessingService) -> None:
        document = await service.save(_letter())
        await service.save(
            _letter(title="Field Report", documentType="report", entities=[{"name": "Verdun", "type": "location"}])
        )
        entity_id = document.entities[0].entity_id

        entity = await service.get_entity(entity_id)
        linked = await service.find_documents_by_entity(entity_id)

        assert entity.name == "John Smith"
        assert [d.document_id for d in linked] == [document.document_id]
        assert [e.entity_id for e in await service.find_entities_by_type("person")] == [entity_id]

    async def test_stats_count_by_type(self, service: DocumentProcessingService) -> None:
        await service.save(_letter())
        await service.save(_letter(title="Field Report", documentType="report"))

        assert await service.stats() == {
            "documents": {"letter": 1, "report": 1},
            "entities": {"person": 1},
        }

    async def test_concurrent_auto_save_jobs(self, service: DocumentProcessingService) -> None:
        job_ids = [await service.submit_job("letters/l1.png", auto_save=True) for _ in range(3)]
        await service.wait_for_jobs()

        assert [service.job_status(j).status for j in job_ids] == [JobStatus.COMPLETED] * 3
        assert await service.stats() == {
            "documents": {"letter": 3},
            "entities": {"date": 1, "location": 1, "person": 1},
        }
