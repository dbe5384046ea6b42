"""In-memory tracker for asynchronous analysis jobs.

Each submitted job runs as its own asyncio task. Job records are immutable
snapshots replaced under a lock, so status reads never observe a
half-written record. State lives only for the lifetime of the process.

State machine::

    pending -> processing -> completed | failed
    pending | processing -> cancelled

Cancellation is cooperative: the running task checks the job's status at
every checkpoint and stops writing progress or results once it is
cancelled. In-flight I/O is not interrupted.
"""

import asyncio
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import structlog

from histdocs.errors import InvalidTransition, NotFound, OperationCancelled, describe
from histdocs.models.enums import JobStatus
from histdocs.models.job import JobOptions, ProcessingJob
from histdocs.services.analysis import AnalysisOrchestrator
from histdocs.services.persistence import PersistenceCoordinator

DEFAULT_RETENTION = timedelta(hours=24)

PROGRESS_STARTED = 10
PROGRESS_BY_STAGE = {
    "fetched": 25,
    "converted": 40,
    "classifying": 50,
}
PROGRESS_ANALYZED = 80
PROGRESS_DONE = 100

_CANCELLABLE = (JobStatus.PENDING, JobStatus.PROCESSING)


class JobTracker:
    """Tracks the lifecycle of background analysis (and optional save) jobs."""

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        coordinator: PersistenceCoordinator,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._coordinator = coordinator
        self._retention = retention
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or structlog.get_logger(__name__)
        self._jobs: dict[str, ProcessingJob] = {}
        self._lock = threading.Lock()
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def submit(self, file_id: str, options: JobOptions | None = None) -> str:
        """Create a pending job and start it in the background.

        Returns immediately with the new job id.
        """
        options = options or JobOptions()
        now = self._clock()
        job = ProcessingJob(
            job_id=str(uuid4()),
            file_id=file_id,
            options=options,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._jobs[job.job_id] = job

        task = asyncio.get_running_loop().create_task(self._run(job.job_id, file_id, options))
        with self._lock:
            self._tasks[job.job_id] = task
        task.add_done_callback(lambda _: self._forget_task(job.job_id))

        self._logger.info(
            "job_submitted",
            job_id=job.job_id,
            file_id=file_id,
            auto_save=options.auto_save,
            force_refresh=options.force_refresh,
        )
        return job.job_id

    def status(self, job_id: str) -> ProcessingJob:
        """Return the current snapshot of a job.

        Raises:
            NotFound: If the job id is unknown or was swept.
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFound(f"Processing job not found: {job_id}")
        return job

    def cancel(self, job_id: str) -> ProcessingJob:
        """Mark a pending or processing job as cancelled.

        Raises:
            NotFound: If the job id is unknown.
            InvalidTransition: If the job already completed, failed or was
                cancelled.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(f"Processing job not found: {job_id}")
            if job.status not in _CANCELLABLE:
                raise InvalidTransition(f"Cannot cancel job {job_id} in state {job.status.value}")
            job = self._replace(job, status=JobStatus.CANCELLED)

        self._logger.info("job_cancelled", job_id=job_id)
        return job

    def sweep(self) -> int:
        """Remove jobs created more than the retention window ago, in any state.

        Returns:
            Number of removed jobs.
        """
        cutoff = self._clock() - self._retention
        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
            for job_id in expired:
                del self._jobs[job_id]

        for job_id in expired:
            self._logger.info("job_swept", job_id=job_id)
        return len(expired)

    def list_jobs(self) -> list[ProcessingJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.created_at)

    def running_jobs(self) -> list[str]:
        """Ids of jobs whose background task has not finished yet."""
        with self._lock:
            return list(self._tasks)

    async def wait(self, job_id: str | None = None) -> None:
        """Wait for one running job, or for every running job."""
        with self._lock:
            if job_id is not None:
                task = self._tasks.get(job_id)
                tasks = [task] if task is not None else []
            else:
                tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, job_id: str, file_id: str, options: JobOptions) -> None:
        """Background body of a job. Never raises."""
        try:
            self._advance(job_id, progress=PROGRESS_STARTED, status=JobStatus.PROCESSING)

            def checkpoint(stage: str) -> None:
                self._advance(job_id, progress=PROGRESS_BY_STAGE.get(stage))

            result = await self._orchestrator.analyze(
                file_id,
                force_refresh=options.force_refresh,
                checkpoint=checkpoint,
            )
            self._advance(job_id, progress=PROGRESS_ANALYZED)

            if options.auto_save:
                document = await self._coordinator.save(result.to_payload())
                result = result.model_copy(update={"saved_document": document})

            self._advance(job_id, progress=PROGRESS_DONE, status=JobStatus.COMPLETED, result=result)
            self._logger.info("job_completed", job_id=job_id)
        except OperationCancelled:
            self._logger.info("job_stopped_after_cancel", job_id=job_id)
        except Exception as e:
            self._logger.exception("job_failed", job_id=job_id, file_id=file_id)
            self._fail(job_id, describe(e))

    def _forget_task(self, job_id: str) -> None:
        with self._lock:
            self._tasks.pop(job_id, None)

    def _advance(self, job_id: str, progress: int | None = None, **changes: Any) -> None:
        """Write progress for a live job; raise OperationCancelled if it is not live."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status == JobStatus.CANCELLED:
                raise OperationCancelled(f"Processing job {job_id} was cancelled")
            if progress is not None:
                changes["progress"] = max(job.progress, progress)
            self._replace(job, **changes)

    def _fail(self, job_id: str, error: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return
            self._replace(job, status=JobStatus.FAILED, error=error)

    def _replace(self, job: ProcessingJob, **changes: Any) -> ProcessingJob:
        """Store an updated snapshot. Caller must hold the lock."""
        changes["updated_at"] = self._clock()
        updated = job.model_copy(update=changes)
        self._jobs[job.job_id] = updated
        return updated
