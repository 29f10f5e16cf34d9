"""Health check endpoints."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text

from ..config import APISettings, get_settings
from ..schemas import ComponentHealth, HealthStatus

router = APIRouter()


async def check_database() -> ComponentHealth:
    """Check database connectivity."""
    start = time.perf_counter()
    try:
        from ..deps import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000
        return ComponentHealth(status="healthy", latency_ms=latency, message=None)
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return ComponentHealth(status="unhealthy", latency_ms=latency, message=str(e))


def check_worker(settings: APISettings) -> ComponentHealth:
    """Report whether a worker endpoint is configured. Does not contact it."""
    if settings.worker_url:
        return ComponentHealth(status="healthy", latency_ms=None, message=None)
    return ComponentHealth(
        status="degraded", latency_ms=None, message="Worker URL is not configured"
    )


@router.get("/health", response_model=HealthStatus)
async def health_check(
    settings: APISettings = Depends(get_settings),
) -> HealthStatus:
    """
    Health check endpoint for load balancers and monitoring.

    Returns the status of all system components.
    """
    checks = {
        "database": await check_database(),
        "worker": check_worker(settings),
    }

    statuses = [c.status for c in checks.values()]
    if all(s == "healthy" for s in statuses):
        overall = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall = "unhealthy"
    else:
        overall = "degraded"

    return HealthStatus(
        status=overall,
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness() -> dict[str, str]:
    """
    Kubernetes liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness() -> dict[str, str]:
    """
    Kubernetes readiness probe.

    Only the database gates readiness; an unconfigured worker still lets
    operators read batch progress.
    """
    db_health = await check_database()
    if db_health.status == "unhealthy":
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
