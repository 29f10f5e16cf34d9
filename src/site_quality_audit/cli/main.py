"""CLI entrypoint for site quality audit batches."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any
from uuid import UUID

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..api.config import APISettings, get_settings
from ..api.deps import create_engine_for
from ..batch.coordinator import BatchCoordinator
from ..batch.dispatcher import RateLimitedDispatcher
from ..batch.poller import BatchReader, HTTPBatchReader, ProgressPoller
from ..batch.resolver import TargetResolver
from ..batch.store import BatchStore
from ..core.config import load_config, policy_from_settings
from ..core.errors import AuditBatchError
from ..core.types import (
    AllPublishersScope,
    BatchPolicy,
    BatchScope,
    BatchStatus,
    BatchSummary,
    ProgressSnapshot,
    SiteListScope,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration.

    Args:
        level: Logging level
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Site Quality Audit - Fan audits out to the monitoring worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Audit every site of every eligible publisher and follow progress
  site-audit trigger-all --watch

  # Audit two sites of one publisher with a custom throttling policy
  site-audit --config policy.yaml trigger --publisher-id <uuid> --site a.com --site b.com

  # Resume watching a batch through the HTTP API
  site-audit watch <batch-uuid> --api-url https://audits.internal --token <jwt>
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to a YAML batch policy file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    trigger_all = subparsers.add_parser(
        "trigger-all", help="Audit every site of every eligible publisher"
    )
    _add_dispatch_args(trigger_all)

    trigger = subparsers.add_parser("trigger", help="Audit explicit sites of one publisher")
    trigger.add_argument("--publisher-id", type=UUID, required=True, help="Publisher UUID")
    trigger.add_argument(
        "--site",
        dest="sites",
        action="append",
        required=True,
        help="Site name to audit (repeatable)",
    )
    _add_dispatch_args(trigger)

    watch = subparsers.add_parser("watch", help="Follow the progress of an existing batch")
    watch.add_argument("batch_id", type=UUID, help="Batch UUID")
    watch.add_argument("--api-url", type=str, help="Read progress over HTTP instead of the DB")
    watch.add_argument("--token", type=str, help="Bearer token for --api-url")
    _add_poll_args(watch)

    return parser.parse_args(argv)


def _add_dispatch_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--min-delay-ms", type=int, help="Lower bound of the dispatch delay")
    parser.add_argument("--max-delay-ms", type=int, help="Upper bound of the dispatch delay")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Poll the batch until it finishes after dispatching",
    )
    _add_poll_args(parser)


def _add_poll_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--interval-ms", type=int, help="Pause between progress reads")
    parser.add_argument("--max-attempts", type=int, help="Progress reads before giving up")


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Policy overrides from command line flags."""
    overrides: dict[str, Any] = {}
    dispatch = {
        "min_delay_ms": getattr(args, "min_delay_ms", None),
        "max_delay_ms": getattr(args, "max_delay_ms", None),
    }
    poll = {
        "interval_ms": getattr(args, "interval_ms", None),
        "max_attempts": getattr(args, "max_attempts", None),
    }
    dispatch = {k: v for k, v in dispatch.items() if v is not None}
    poll = {k: v for k, v in poll.items() if v is not None}
    if dispatch:
        overrides["dispatch"] = dispatch
    if poll:
        overrides["poll"] = poll
    return overrides


def log_summary(summary: BatchSummary) -> None:
    """Print the per-publisher breakdown of a trigger call."""
    logger.info("=" * 60)
    logger.info("DISPATCH COMPLETE")
    logger.info("=" * 60)
    for result in summary.results:
        if result.queued:
            logger.info(f"  queued  {result.publisher.name} ({len(result.site_names)} sites)")
        else:
            logger.info(f"  failed  {result.publisher.name}: {result.error}")
    logger.info(
        f"Publishers: {summary.queued_publishers} queued, {summary.failed_publishers} failed "
        f"of {summary.total_publishers}; {summary.total_sites} sites"
    )
    if summary.batch_id:
        logger.info(f"Batch: {summary.batch_id}")
    logger.info("=" * 60)


def log_snapshot(snapshot: ProgressSnapshot) -> None:
    batch = snapshot.batch
    logger.info(
        f"[{snapshot.attempt}] {batch.status.value}: {batch.completed_sites} completed, "
        f"{batch.failed_sites} failed of {batch.total_sites} sites"
    )


async def watch_batch(reader: BatchReader, batch_id: UUID, policy: BatchPolicy) -> int:
    """Poll a batch until it is terminal or the attempt budget is spent."""
    poller = ProgressPoller(
        reader,
        interval_ms=policy.poll.interval_ms,
        max_attempts=policy.poll.max_attempts,
    )
    outcome = await poller.poll_batch(batch_id, on_snapshot=log_snapshot)

    if outcome.state == "exhausted":
        logger.warning(
            f"Batch {batch_id} still running after {outcome.attempts} checks; "
            "watch it again later"
        )
        return 0
    if outcome.last is None:
        return 0
    return 1 if outcome.last.batch.status == BatchStatus.FAILED else 0


async def run_trigger(
    scope: BatchScope, settings: APISettings, policy: BatchPolicy, watch: bool = False
) -> int:
    """Trigger a batch against the configured database and worker."""
    dispatcher = RateLimitedDispatcher(
        worker_url=settings.worker_url,
        worker_secret=settings.worker_secret,
        audit_path=settings.worker_audit_path,
        timeout_seconds=policy.dispatch.timeout_seconds,
        min_delay_ms=policy.dispatch.min_delay_ms,
        max_delay_ms=policy.dispatch.max_delay_ms,
    )

    engine = create_engine_for(settings)
    try:
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        store = BatchStore(factory)
        coordinator = BatchCoordinator(
            resolver=TargetResolver(factory),
            dispatcher=dispatcher,
            store=store,
            policy=policy.dispatch,
        )

        summary = await coordinator.trigger_batch(scope)
        log_summary(summary)
        if not summary.success:
            return 1
        if watch and summary.batch_id is not None:
            return await watch_batch(store, summary.batch_id, policy)
        return 0
    finally:
        await engine.dispose()


async def run_watch(
    batch_id: UUID,
    settings: APISettings,
    policy: BatchPolicy,
    api_url: str | None = None,
    token: str | None = None,
) -> int:
    """Watch a batch from the database, or over HTTP when an API URL is given."""
    if api_url:
        return await watch_batch(HTTPBatchReader(api_url, token=token), batch_id, policy)

    engine = create_engine_for(settings)
    try:
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        return await watch_batch(BatchStore(factory), batch_id, policy)
    finally:
        await engine.dispose()


async def main_async(argv: list[str] | None = None) -> int:
    """Async main function.

    Returns:
        Exit code
    """
    args = parse_args(argv)

    setup_logging(args.log_level)

    try:
        settings = get_settings()
        policy = load_config(
            config_path=args.config,
            base=policy_from_settings(settings),
            overrides=build_overrides(args),
        )

        if args.command == "watch":
            return await run_watch(
                args.batch_id, settings, policy, api_url=args.api_url, token=args.token
            )

        scope: BatchScope
        if args.command == "trigger":
            scope = SiteListScope(publisher_id=args.publisher_id, site_names=args.sites)
        else:
            scope = AllPublishersScope()
        return await run_trigger(scope, settings, policy, watch=args.watch)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (AuditBatchError, ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Batch failed: {e}", exc_info=True)
        return 1


def main() -> None:
    """Main CLI entrypoint."""
    try:
        sys.exit(asyncio.run(main_async()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
