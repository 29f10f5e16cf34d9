"""Sequential, throttled submission of audit requests to the external worker.

Targets are dispatched one publisher at a time with a randomized pause
between requests so the worker, and the ad-network API behind it, stay
within their per-account rate limits. A failed request is recorded as a
result and never stops the loop.
"""

import asyncio
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

import aiohttp
from prometheus_client import Counter

from ..core.errors import ConfigurationError
from ..core.types import DispatchFailed, DispatchResult, PublisherTargets, Queued

logger = logging.getLogger(__name__)

DISPATCH_COUNTER = Counter(
    "audit_dispatch_total",
    "Audit requests submitted to the worker",
    ["outcome"],
)

ResultCallback = Callable[[PublisherTargets, DispatchResult], Awaitable[None]]


class RateLimitedDispatcher:
    """Submits publisher target groups to the audit worker endpoint."""

    def __init__(
        self,
        worker_url: str | None,
        worker_secret: str | None = None,
        audit_path: str = "/audit-batch-sites",
        timeout_seconds: float = 120.0,
        min_delay_ms: int = 2000,
        max_delay_ms: int = 5000,
        session: aiohttp.ClientSession | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not worker_url:
            raise ConfigurationError("Site monitoring worker URL is not configured")

        self.endpoint = worker_url.rstrip("/") + "/" + audit_path.lstrip("/")
        self.worker_secret = worker_secret
        self.timeout_seconds = timeout_seconds
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._session = session
        self._rng = rng or random.Random()
        self._sleep = sleep

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Client-Info": "site-quality-audit/1.0",
        }
        if self.worker_secret:
            headers["Authorization"] = f"Bearer {self.worker_secret}"
        return headers

    def next_delay_ms(
        self, min_delay_ms: int | None = None, max_delay_ms: int | None = None
    ) -> float:
        """Sample the pause before the next request, uniformly from the window."""
        low = self.min_delay_ms if min_delay_ms is None else min_delay_ms
        high = self.max_delay_ms if max_delay_ms is None else max_delay_ms
        return self._rng.uniform(low, high)

    async def dispatch(
        self,
        group: PublisherTargets,
        batch_id: UUID | None = None,
        request_id: str | None = None,
    ) -> DispatchResult:
        """Submit one publisher's targets. Never raises for HTTP failures."""
        async with self._client() as session:
            return await self._post(session, group, batch_id, request_id)

    async def dispatch_all(
        self,
        groups: Sequence[PublisherTargets],
        min_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
        batch_id: UUID | None = None,
        request_id: str | None = None,
        on_result: ResultCallback | None = None,
    ) -> list[DispatchResult]:
        """Submit every group in order, pausing between consecutive requests.

        Args:
            groups: Target groups, dispatched in the given order
            min_delay_ms: Lower bound of the pause (defaults to the instance's)
            max_delay_ms: Upper bound of the pause (defaults to the instance's)
            batch_id: Batch the jobs belong to, forwarded to the worker
            request_id: Correlation id for logs and the worker
            on_result: Awaited after each dispatch, before the pause

        Returns:
            One result per group, in dispatch order
        """
        prefix = f"[{request_id}] " if request_id else ""
        results: list[DispatchResult] = []
        total = len(groups)

        async with self._client() as session:
            for index, group in enumerate(groups, 1):
                result = await self._post(session, group, batch_id, request_id)
                results.append(result)

                if result.queued:
                    logger.info(
                        f"{prefix}Publisher {index}/{total}: {group.publisher.name} "
                        f"({len(group.targets)} sites) queued"
                    )
                else:
                    logger.warning(
                        f"{prefix}Publisher {index}/{total}: {group.publisher.name} "
                        f"failed: {result.error}"
                    )

                if on_result is not None:
                    await on_result(group, result)

                if index < total:
                    delay_ms = self.next_delay_ms(min_delay_ms, max_delay_ms)
                    logger.info(
                        f"{prefix}Rate limiting: waiting {delay_ms:.0f}ms before next publisher"
                    )
                    await self._sleep(delay_ms / 1000)

        return results

    async def _post(
        self,
        session: aiohttp.ClientSession,
        group: PublisherTargets,
        batch_id: UUID | None,
        request_id: str | None,
    ) -> DispatchResult:
        payload: dict[str, Any] = {
            "publisher_id": str(group.publisher.id),
            "site_names": group.site_names,
        }
        if batch_id is not None:
            payload["batch_id"] = str(batch_id)
            payload["jobs"] = [
                {"job_id": str(job_id), "site_name": target.site_name}
                for job_id, target in zip(group.job_ids, group.targets)
            ]
        if request_id:
            payload["request_id"] = request_id

        try:
            async with session.post(
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                body = await response.text(errors="replace")
                if 200 <= response.status < 300:
                    outcome: Queued | DispatchFailed = Queued()
                else:
                    outcome = DispatchFailed(
                        reason=body or f"Worker responded with status {response.status}",
                        status_code=response.status,
                    )
        except asyncio.TimeoutError:
            outcome = DispatchFailed(
                reason=f"Worker request timed out after {self.timeout_seconds:g}s"
            )
        except aiohttp.ClientError as e:
            outcome = DispatchFailed(reason=f"Worker request failed: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error dispatching {group.publisher.name}")
            outcome = DispatchFailed(reason=str(e) or type(e).__name__)

        DISPATCH_COUNTER.labels(outcome=outcome.outcome).inc()
        return DispatchResult(
            publisher=group.publisher, site_names=group.site_names, result=outcome
        )
