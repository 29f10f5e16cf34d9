"""Durable record of audit batches and their jobs.

Every operation runs in its own short transaction. Batch aggregates are
recomputed from job rows on read, so the only writes are batch creation
(one batch plus its jobs, atomically) and independent single-job updates.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import (
    BatchCreationError,
    BatchNotFoundError,
    IncompleteJobResultError,
    InvalidJobTransitionError,
    JobNotFoundError,
)
from ..core.types import (
    AuditTarget,
    BatchProgress,
    BatchStatus,
    BatchType,
    DispatchFailed,
    DispatchOutcome,
    JobStatus,
    JobView,
    derive_batch_status,
)
from ..db.models import AuditBatch, AuditJob, utcnow
from ..db.repositories import BatchRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedBatch:
    """Identifiers assigned by :meth:`BatchStore.create_batch`."""

    batch_id: UUID
    job_ids: list[UUID] = field(default_factory=list)


def _job_view(job: AuditJob) -> JobView:
    return JobView(
        job_id=job.id,
        batch_id=job.batch_id,
        publisher_id=job.publisher_id,
        site_name=job.site_name,
        status=JobStatus(job.status),
        dispatch_outcome=job.dispatch_outcome,  # type: ignore[arg-type]
        score=job.score,
        error_message=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


class BatchStore:
    """Single source of truth for batch progress."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_batch(
        self,
        targets: Sequence[AuditTarget],
        batch_type: BatchType = BatchType.MULTI_SITE,
        publisher_id: UUID | None = None,
        request_id: str | None = None,
    ) -> CreatedBatch:
        """Create one batch row and one job row per target, all or nothing."""
        try:
            async with self._session_factory() as session, session.begin():
                batch, jobs = await BatchRepository(session).create(
                    batch_type=batch_type,
                    targets=targets,
                    publisher_id=publisher_id,
                    request_id=request_id,
                )
                created = CreatedBatch(batch_id=batch.id, job_ids=[j.id for j in jobs])
        except SQLAlchemyError as e:
            raise BatchCreationError(f"Failed to create audit batch: {e}") from e

        logger.info(f"Created batch {created.batch_id} with {len(created.job_ids)} jobs")
        return created

    async def get_batch(self, batch_id: UUID) -> BatchProgress:
        """Current aggregate snapshot of a batch."""
        async with self._session_factory() as session:
            repo = BatchRepository(session)
            batch = await repo.get_by_id(batch_id)
            if batch is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")
            counts = await repo.job_counts(batch_id)
            return self._progress(batch, counts)

    async def list_batches(self, limit: int = 20) -> list[BatchProgress]:
        """Most recent batches with their aggregates."""
        async with self._session_factory() as session:
            repo = BatchRepository(session)
            batches = await repo.list_recent(limit)
            return [self._progress(b, await repo.job_counts(b.id)) for b in batches]

    async def list_jobs(self, batch_id: UUID) -> list[JobView]:
        """All jobs of a batch."""
        async with self._session_factory() as session:
            repo = BatchRepository(session)
            if await repo.get_by_id(batch_id) is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")
            return [_job_view(j) for j in await repo.list_jobs(batch_id)]

    async def record_dispatch(self, job_ids: Sequence[UUID], outcome: DispatchOutcome) -> None:
        """Record what happened when the jobs' targets were sent to the worker."""
        if not job_ids:
            return
        async with self._session_factory() as session, session.begin():
            repo = BatchRepository(session)
            if isinstance(outcome, DispatchFailed):
                await repo.set_dispatch_outcome(
                    job_ids, "dispatch_failed", error_message=outcome.reason, now=utcnow()
                )
            else:
                await repo.set_dispatch_outcome(job_ids, "queued")

    async def mark_batch_failed(self, batch_id: UUID, reason: str) -> None:
        """Flag a batch as failed at the coordinator level."""
        async with self._session_factory() as session, session.begin():
            await BatchRepository(session).mark_failed(batch_id, {"reason": reason})
        logger.warning(f"Batch {batch_id} marked failed: {reason}")

    async def update_job_status(
        self,
        job_id: UUID,
        status: JobStatus,
        score: float | None = None,
        error_message: str | None = None,
    ) -> JobView:
        """Apply a worker status update to one job.

        Transitions only move forward (pending -> in_progress -> completed
        or failed). Repeating the current status is a no-op. Completed jobs
        must carry a score and failed jobs an error message.

        Raises:
            JobNotFoundError: Unknown job id
            InvalidJobTransitionError: The update would regress the job
            IncompleteJobResultError: Terminal update without its result
        """
        if status == JobStatus.COMPLETED and score is None:
            raise IncompleteJobResultError("Completed jobs require a score")
        if status == JobStatus.FAILED and not error_message:
            raise IncompleteJobResultError("Failed jobs require an error message")

        async with self._session_factory() as session, session.begin():
            job = await BatchRepository(session).get_job(job_id, for_update=True)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")

            current = JobStatus(job.status)
            if current == status:
                return _job_view(job)
            if status.rank <= current.rank:
                raise InvalidJobTransitionError(
                    f"Job {job_id} cannot move from {current.value} to {status.value}"
                )

            now = utcnow()
            job.status = status.value
            job.updated_at = now
            if job.started_at is None:
                job.started_at = now
            if status == JobStatus.COMPLETED:
                job.score = score
                job.completed_at = now
            elif status == JobStatus.FAILED:
                job.error_message = error_message
                job.completed_at = now
            await session.flush()
            view = _job_view(job)

        logger.info(f"Job {job_id} ({view.site_name}): {current.value} -> {status.value}")
        return view

    @staticmethod
    def _progress(batch: AuditBatch, counts: dict) -> BatchProgress:
        stored = BatchStatus(batch.status)
        status = derive_batch_status(
            batch.total_sites, counts["completed"], counts["failed"], stored=stored
        )
        completed_at = batch.completed_at
        if completed_at is None and status == BatchStatus.COMPLETED:
            completed_at = counts["last_completed_at"]
        return BatchProgress(
            batch_id=batch.id,
            batch_type=BatchType(batch.batch_type),
            publisher_id=batch.publisher_id,
            total_sites=batch.total_sites,
            queued_sites=counts["queued"],
            completed_sites=counts["completed"],
            failed_sites=counts["failed"],
            status=status,
            created_at=batch.created_at,
            completed_at=completed_at,
        )
