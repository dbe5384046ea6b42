from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from histdocs.models.enums import JobStatus
from histdocs.models.job import JobOptions, ProcessingJob


def _make_job(**overrides: object) -> ProcessingJob:
    now = datetime.now(timezone.utc)
    data: dict[str, object] = {
        "job_id": str(uuid4()),
        "file_id": "letters/l1.pdf",
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return ProcessingJob(**data)


def test_job_defaults_to_pending_with_no_progress() -> None:
    job = _make_job()

    assert job.status == JobStatus.PENDING
    assert job.progress == 0
    assert job.options == JobOptions()
    assert job.result is None
    assert job.error is None


@pytest.mark.parametrize("progress", [-1, 101])
def test_job_progress_is_bounded(progress: int) -> None:
    with pytest.raises(ValidationError):
        _make_job(progress=progress)


def test_terminal_states() -> None:
    assert {s for s in JobStatus if s.is_terminal} == {
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }


def test_job_is_immutable() -> None:
    job = _make_job()
    with pytest.raises(ValidationError):
        job.progress = 50
