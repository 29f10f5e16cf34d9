"""Orchestration of one batch audit request.

Resolve targets, persist the batch, dispatch publisher by publisher and
fold the per-publisher results into a summary. Per-publisher failures are
part of the summary; only coordinator-level faults raise.
"""

import logging
from uuid import UUID, uuid4

from ..core.errors import TargetResolutionError
from ..core.types import (
    AllPublishersScope,
    AuditTarget,
    BatchScope,
    BatchSummary,
    BatchType,
    DispatchFailed,
    DispatchPolicy,
    DispatchResult,
    PublisherRef,
    PublisherTargets,
)
from .dispatcher import RateLimitedDispatcher
from .resolver import TargetResolver
from .store import BatchStore

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """Runs "audit everything" and "audit these sites" requests."""

    def __init__(
        self,
        resolver: TargetResolver,
        dispatcher: RateLimitedDispatcher,
        store: BatchStore,
        policy: DispatchPolicy | None = None,
    ) -> None:
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.store = store
        self.policy = policy or DispatchPolicy()

    async def trigger_batch(
        self, scope: BatchScope, request_id: str | None = None
    ) -> BatchSummary:
        """Run one batch request end to end.

        Args:
            scope: All eligible publishers, or one publisher's explicit sites
            request_id: Correlation id for logs (generated when omitted)

        Returns:
            Summary with ``success`` true iff at least one publisher was queued

        Raises:
            PublisherListError: The eligible publishers could not be read
            BatchCreationError: The batch could not be persisted
        """
        request_id = request_id or str(uuid4())

        if isinstance(scope, AllPublishersScope):
            logger.info(f"[{request_id}] Starting audit of all eligible publishers")
            order, groups, failures = await self._resolve_all(request_id)
            batch_type, batch_publisher = BatchType.ALL_PUBLISHERS, None
        else:
            publisher = await self.resolver.describe_publisher(scope.publisher_id)
            logger.info(
                f"[{request_id}] Starting audit of {len(scope.site_names)} sites "
                f"for {publisher.name}"
            )
            targets = tuple(
                AuditTarget(publisher_id=publisher.id, site_name=name)
                for name in scope.site_names
            )
            groups = [PublisherTargets(publisher=publisher, targets=targets)]
            failures = {}
            order = [publisher.id]
            batch_type, batch_publisher = BatchType.MULTI_SITE, publisher.id

        all_targets = [t for g in groups for t in g.targets]

        if not all_targets:
            logger.warning(f"[{request_id}] Nothing to dispatch")
            summary = BatchSummary.from_results(
                request_id, None, list(failures.values()), total_sites=0
            )
            self._log_summary(summary)
            return summary

        created = await self.store.create_batch(
            all_targets,
            batch_type=batch_type,
            publisher_id=batch_publisher,
            request_id=request_id,
        )
        groups = self._attach_job_ids(groups, created.job_ids)

        async def record(group: PublisherTargets, result: DispatchResult) -> None:
            await self.store.record_dispatch(group.job_ids, result.result)

        try:
            dispatched = await self.dispatcher.dispatch_all(
                groups,
                min_delay_ms=self.policy.min_delay_ms,
                max_delay_ms=self.policy.max_delay_ms,
                batch_id=created.batch_id,
                request_id=request_id,
                on_result=record,
            )
        except Exception as e:
            logger.exception(f"[{request_id}] Dispatch aborted")
            await self._fail_batch(created.batch_id, f"Coordinator fault: {e}", request_id)
            raise

        by_publisher = {r.publisher.id: r for r in dispatched}
        by_publisher.update(failures)
        results = [by_publisher[publisher_id] for publisher_id in order]

        summary = BatchSummary.from_results(
            request_id, created.batch_id, results, total_sites=len(all_targets)
        )
        if not summary.success:
            await self._fail_batch(created.batch_id, "No targets could be dispatched", request_id)

        self._log_summary(summary)
        return summary

    async def _resolve_all(
        self, request_id: str
    ) -> tuple[list[UUID], list[PublisherTargets], dict[UUID, DispatchResult]]:
        publishers = await self.resolver.resolve_all_eligible_publishers()
        logger.info(f"[{request_id}] Found {len(publishers)} publishers")

        groups: list[PublisherTargets] = []
        failures: dict[UUID, DispatchResult] = {}
        for publisher in publishers:
            try:
                targets = await self.resolver.resolve_targets(publisher.id)
            except TargetResolutionError as e:
                logger.warning(f"[{request_id}] {publisher.name}: {e}")
                failures[publisher.id] = self._failed(publisher, str(e))
                continue
            logger.debug(
                f"[{request_id}] {publisher.name} has {len(targets)} sites: "
                + ", ".join(t.site_name for t in targets)
            )
            groups.append(PublisherTargets(publisher=publisher, targets=tuple(targets)))
        return [p.id for p in publishers], groups, failures

    @staticmethod
    def _attach_job_ids(
        groups: list[PublisherTargets], job_ids: list[UUID]
    ) -> list[PublisherTargets]:
        attached = []
        offset = 0
        for group in groups:
            count = len(group.targets)
            ids = tuple(job_ids[offset : offset + count])
            attached.append(group.model_copy(update={"job_ids": ids}))
            offset += count
        return attached

    @staticmethod
    def _failed(publisher: PublisherRef, reason: str) -> DispatchResult:
        return DispatchResult(publisher=publisher, result=DispatchFailed(reason=reason))

    async def _fail_batch(self, batch_id: UUID, reason: str, request_id: str) -> None:
        try:
            await self.store.mark_batch_failed(batch_id, reason)
        except Exception:
            logger.exception(f"[{request_id}] Could not mark batch {batch_id} failed")

    @staticmethod
    def _log_summary(summary: BatchSummary) -> None:
        logger.info(
            f"[{summary.request_id}] Completed: {summary.queued_publishers} queued, "
            f"{summary.failed_publishers} failed of {summary.total_publishers} publishers"
        )
