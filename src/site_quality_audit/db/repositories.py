"""Repository classes for database operations."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.types import AuditTarget, BatchType
from .models import AuditBatch, AuditJob, Publisher, PublisherSiteReport, utcnow


class PublisherRepository:
    """Repository for publisher lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, publisher_id: UUID) -> Publisher | None:
        """Get publisher by ID."""
        result = await self.session.execute(select(Publisher).where(Publisher.id == publisher_id))
        row: Publisher | None = result.scalar_one_or_none()
        return row

    async def list_eligible(self) -> list[Publisher]:
        """List publishers with a workflow status, newest first."""
        result = await self.session.execute(
            select(Publisher)
            .where(Publisher.gam_status.is_not(None))
            .order_by(Publisher.created_at.desc(), Publisher.id)
        )
        return list(result.scalars().all())

    async def site_name_counts(self, publisher_id: UUID) -> list[tuple[str, int]]:
        """Observed site names with their report counts, most frequent first."""
        count = func.count().label("n")
        result = await self.session.execute(
            select(PublisherSiteReport.site_name, count)
            .where(
                PublisherSiteReport.publisher_id == publisher_id,
                PublisherSiteReport.site_name.is_not(None),
            )
            .group_by(PublisherSiteReport.site_name)
            .order_by(count.desc(), PublisherSiteReport.site_name)
        )
        return [(name, n) for name, n in result.all()]


class BatchRepository:
    """Repository for audit batch and job rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        batch_type: BatchType,
        targets: Sequence[AuditTarget],
        publisher_id: UUID | None = None,
        request_id: str | None = None,
    ) -> tuple[AuditBatch, list[AuditJob]]:
        """Create a batch and one pending job per target."""
        batch = AuditBatch(
            batch_type=batch_type.value,
            publisher_id=publisher_id,
            total_sites=len(targets),
            status="pending",
            request_id=request_id,
        )
        self.session.add(batch)
        await self.session.flush()

        jobs = [
            AuditJob(
                batch_id=batch.id,
                publisher_id=target.publisher_id,
                site_name=target.site_name,
                status="pending",
            )
            for target in targets
        ]
        self.session.add_all(jobs)
        await self.session.flush()
        return batch, jobs

    async def get_by_id(self, batch_id: UUID) -> AuditBatch | None:
        """Get batch by ID."""
        result = await self.session.execute(select(AuditBatch).where(AuditBatch.id == batch_id))
        row: AuditBatch | None = result.scalar_one_or_none()
        return row

    async def list_recent(self, limit: int = 20) -> list[AuditBatch]:
        """List the most recent batches."""
        result = await self.session.execute(
            select(AuditBatch).order_by(AuditBatch.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def job_counts(self, batch_id: UUID) -> dict[str, Any]:
        """Count a batch's jobs by state in a single query."""

        def _count(condition: Any) -> Any:
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self.session.execute(
            select(
                func.count(AuditJob.id),
                _count(AuditJob.dispatch_outcome == "queued"),
                _count(AuditJob.status == "completed"),
                _count(AuditJob.status == "failed"),
                func.max(AuditJob.completed_at),
            ).where(AuditJob.batch_id == batch_id)
        )
        total, queued, completed, failed, last_completed = result.one()
        return {
            "jobs": int(total),
            "queued": int(queued),
            "completed": int(completed),
            "failed": int(failed),
            "last_completed_at": last_completed,
        }

    async def list_jobs(self, batch_id: UUID) -> list[AuditJob]:
        """List a batch's jobs in creation order."""
        result = await self.session.execute(
            select(AuditJob)
            .where(AuditJob.batch_id == batch_id)
            .order_by(AuditJob.created_at, AuditJob.site_name)
        )
        return list(result.scalars().all())

    async def get_job(self, job_id: UUID, for_update: bool = False) -> AuditJob | None:
        """Get job by ID, optionally locking the row."""
        stmt = select(AuditJob).where(AuditJob.id == job_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        row: AuditJob | None = result.scalar_one_or_none()
        return row

    async def set_dispatch_outcome(
        self,
        job_ids: Sequence[UUID],
        outcome: str,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record the dispatch outcome.

        A failure only lands on still-pending jobs. Acceptance is recorded even
        when the worker callback already moved the job along.
        """
        stmt = update(AuditJob).where(AuditJob.id.in_(list(job_ids)))
        if outcome == "dispatch_failed":
            stmt = stmt.where(AuditJob.status == "pending").values(
                dispatch_outcome=outcome,
                status="failed",
                error_message=error_message,
                completed_at=now,
            )
        else:
            stmt = stmt.where(AuditJob.dispatch_outcome.is_(None)).values(dispatch_outcome=outcome)
        await self.session.execute(stmt)

    async def mark_failed(self, batch_id: UUID, error_details: dict[str, Any]) -> None:
        """Set the coordinator-level failed override."""
        await self.session.execute(
            update(AuditBatch)
            .where(AuditBatch.id == batch_id)
            .values(status="failed", error_details=error_details, completed_at=utcnow())
        )
