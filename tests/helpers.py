"""Shared test helpers."""

import json as jsonlib
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import aiohttp

from site_quality_audit.core.types import (
    AuditTarget,
    BatchProgress,
    BatchStatus,
    BatchType,
    JobStatus,
    JobView,
    PublisherRef,
    PublisherTargets,
)
from site_quality_audit.db.models import Publisher, PublisherSiteReport, utcnow


async def seed_publisher(
    factory: Any,
    name: str,
    gam_status: str | None = "approved",
    created_at: datetime | None = None,
    sites: Iterable[str | None] = (),
) -> UUID:
    """Insert a publisher and one site report row per entry in ``sites``."""
    async with factory() as session, session.begin():
        publisher = Publisher(
            name=name,
            domain=f"{name.lower().replace(' ', '-')}.example",
            gam_status=gam_status,
            created_at=created_at or utcnow(),
        )
        session.add(publisher)
        await session.flush()
        for site in sites:
            session.add(PublisherSiteReport(publisher_id=publisher.id, site_name=site))
        publisher_id: UUID = publisher.id
    return publisher_id


def make_group(name: str = "Acme", sites: Iterable[str] = ("acme.com",)) -> PublisherTargets:
    """Create a publisher target group without job ids."""
    publisher = PublisherRef(id=uuid4(), name=name)
    targets = tuple(AuditTarget(publisher_id=publisher.id, site_name=s) for s in sites)
    return PublisherTargets(publisher=publisher, targets=targets)


def make_progress(
    total: int = 3,
    completed: int = 0,
    failed: int = 0,
    status: BatchStatus | None = None,
    batch_id: UUID | None = None,
) -> BatchProgress:
    """Create a batch snapshot; status is derived from counts unless given."""
    from site_quality_audit.core.types import derive_batch_status

    return BatchProgress(
        batch_id=batch_id or uuid4(),
        batch_type=BatchType.MULTI_SITE,
        total_sites=total,
        queued_sites=total,
        completed_sites=completed,
        failed_sites=failed,
        status=status or derive_batch_status(total, completed, failed),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def make_job(batch_id: UUID, site_name: str, status: JobStatus = JobStatus.PENDING) -> JobView:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return JobView(
        job_id=uuid4(),
        batch_id=batch_id,
        publisher_id=uuid4(),
        site_name=site_name,
        status=status,
        created_at=now,
        updated_at=now,
    )


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context."""

    def __init__(self, status: int = 200, body: Any = "") -> None:
        self.status = status
        self.body = body

    async def text(self, encoding: str = "utf-8", errors: str = "strict") -> str:
        if isinstance(self.body, bytes):
            return self.body.decode(encoding, errors)
        return self.body if isinstance(self.body, str) else jsonlib.dumps(self.body)

    async def json(self) -> Any:
        return jsonlib.loads(self.body) if isinstance(self.body, str) else self.body

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(MagicMock(), (), status=self.status)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class _Raising:
    def __init__(self, error: BaseException) -> None:
        self.error = error

    async def __aenter__(self) -> None:
        raise self.error

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """Records requests and replays canned responses or errors in order."""

    def __init__(self, *responses: FakeResponse | BaseException) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(item, BaseException):
            return _Raising(item)
        return item

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._next("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next("GET", url, **kwargs)
