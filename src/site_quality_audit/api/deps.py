"""API dependencies for the database and batch services."""

import logging
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..batch.coordinator import BatchCoordinator
from ..batch.dispatcher import RateLimitedDispatcher
from ..batch.resolver import TargetResolver
from ..batch.store import BatchStore
from ..core.types import DispatchPolicy
from .config import APISettings, get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_db_engine: AsyncEngine | None = None
_db_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(settings: APISettings) -> AsyncEngine:
    """Create an async engine; SQLite URLs get no pool sizing."""
    kwargs: dict[str, Any] = {"echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
    return create_async_engine(settings.database_url, **kwargs)


async def init_db(create_tables: bool = True) -> None:
    """Initialize database connection pool."""
    global _db_engine, _db_session_factory

    settings = get_settings()
    _db_engine = create_engine_for(settings)
    _db_session_factory = async_sessionmaker(
        bind=_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    if create_tables:
        from ..db.models import Base

        async with _db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info("Database connection pool initialized")


async def close_db() -> None:
    """Close database connection pool."""
    global _db_engine, _db_session_factory

    if _db_engine:
        await _db_engine.dispose()
        _db_engine = None
        _db_session_factory = None
        logger.info("Database connection pool closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory shared by the batch services."""
    if not _db_session_factory:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db_session_factory


def get_batch_store(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> BatchStore:
    return BatchStore(factory)


def get_target_resolver(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> TargetResolver:
    return TargetResolver(factory)


def get_dispatch_policy(
    settings: Annotated[APISettings, Depends(get_settings)],
) -> DispatchPolicy:
    return DispatchPolicy(
        min_delay_ms=settings.dispatch_min_delay_ms,
        max_delay_ms=settings.dispatch_max_delay_ms,
        timeout_seconds=settings.dispatch_timeout_seconds,
    )


def get_dispatcher(
    settings: Annotated[APISettings, Depends(get_settings)],
    policy: Annotated[DispatchPolicy, Depends(get_dispatch_policy)],
) -> RateLimitedDispatcher:
    """Dispatcher for the configured worker.

    Raises:
        ConfigurationError: If no worker URL is configured
    """
    return RateLimitedDispatcher(
        worker_url=settings.worker_url,
        worker_secret=settings.worker_secret,
        audit_path=settings.worker_audit_path,
        timeout_seconds=policy.timeout_seconds,
        min_delay_ms=policy.min_delay_ms,
        max_delay_ms=policy.max_delay_ms,
    )


def get_coordinator(
    dispatcher: Annotated[RateLimitedDispatcher, Depends(get_dispatcher)],
    resolver: Annotated[TargetResolver, Depends(get_target_resolver)],
    store: Annotated[BatchStore, Depends(get_batch_store)],
    policy: Annotated[DispatchPolicy, Depends(get_dispatch_policy)],
) -> BatchCoordinator:
    return BatchCoordinator(resolver=resolver, dispatcher=dispatcher, store=store, policy=policy)
