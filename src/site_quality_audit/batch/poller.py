"""Client-side progress polling for audit batches.

The poller is read-only and fully decoupled from dispatch: abandoning a
watch has no effect on in-flight worker audits. Polling stops when the
batch reaches a terminal status or when the attempt budget runs out;
running out is not an error, a caller can simply watch again later.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol
from uuid import UUID

import aiohttp

from ..core.errors import BatchNotFoundError
from ..core.types import BatchProgress, JobView, PollOutcome, ProgressSnapshot

logger = logging.getLogger(__name__)


class BatchReader(Protocol):
    """Read side of the batch store."""

    async def get_batch(self, batch_id: UUID) -> BatchProgress: ...

    async def list_jobs(self, batch_id: UUID) -> list[JobView]: ...


class HTTPBatchReader:
    """Reads batch progress from the service's HTTP API.

    Lets a client resume watching a batch it did not start, e.g. after a
    page reload, without database access.
    """

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._session = session

    async def get_batch(self, batch_id: UUID) -> BatchProgress:
        data = await self._get(f"/batches/{batch_id}", batch_id)
        return BatchProgress.model_validate(data)

    async def list_jobs(self, batch_id: UUID) -> list[JobView]:
        data = await self._get(f"/batches/{batch_id}/jobs", batch_id)
        return [JobView.model_validate(item) for item in data]

    async def _get(self, path: str, batch_id: UUID) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        if self._session is not None:
            return await self._fetch(self._session, path, headers, timeout, batch_id)
        async with aiohttp.ClientSession() as session:
            return await self._fetch(session, path, headers, timeout, batch_id)

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        path: str,
        headers: dict[str, str],
        timeout: aiohttp.ClientTimeout,
        batch_id: UUID,
    ) -> Any:
        async with session.get(self.api_url + path, headers=headers, timeout=timeout) as response:
            if response.status == 404:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")
            response.raise_for_status()
            return await response.json()


class ProgressPoller:
    """Periodically reads a batch until it is terminal or the budget is spent."""

    def __init__(
        self,
        reader: BatchReader,
        interval_ms: int = 2000,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.reader = reader
        self.interval_ms = interval_ms
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def watch(
        self,
        batch_id: UUID,
        interval_ms: int | None = None,
        max_attempts: int | None = None,
    ) -> AsyncIterator[ProgressSnapshot]:
        """Yield one snapshot per read, pausing between reads.

        Stops after a terminal snapshot or after ``max_attempts`` reads.
        Closing the iterator early cancels nothing but the watch itself.
        """
        interval = self.interval_ms if interval_ms is None else interval_ms
        budget = self.max_attempts if max_attempts is None else max_attempts

        for attempt in range(1, budget + 1):
            batch = await self.reader.get_batch(batch_id)
            jobs = await self.reader.list_jobs(batch_id)
            snapshot = ProgressSnapshot(attempt=attempt, batch=batch, jobs=jobs)
            yield snapshot

            if snapshot.terminal or attempt == budget:
                return
            await self._sleep(interval / 1000)

    async def poll_batch(
        self,
        batch_id: UUID,
        interval_ms: int | None = None,
        max_attempts: int | None = None,
        on_snapshot: Callable[[ProgressSnapshot], Awaitable[None] | None] | None = None,
    ) -> PollOutcome:
        """Watch a batch to the end and report how the watch ended."""
        last: ProgressSnapshot | None = None
        async for snapshot in self.watch(batch_id, interval_ms, max_attempts):
            last = snapshot
            logger.debug(
                f"Batch {batch_id} attempt {snapshot.attempt}: {snapshot.batch.status.value} "
                f"({snapshot.batch.finished_sites}/{snapshot.batch.total_sites} finished)"
            )
            if on_snapshot is not None:
                pending = on_snapshot(snapshot)
                if pending is not None:
                    await pending

        attempts = last.attempt if last else 0
        if last is not None and last.terminal:
            return PollOutcome(state="terminal", attempts=attempts, last=last)

        logger.info(f"Stopped watching batch {batch_id} after {attempts} attempts")
        return PollOutcome(state="exhausted", attempts=attempts, last=last)
