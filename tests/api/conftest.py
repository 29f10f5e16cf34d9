"""Fixtures for API tests."""

# Mock environment variables before importing app
import os
from collections.abc import AsyncGenerator

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

os.environ.update(
    {
        "SQA_SECRET_KEY": "test-secret-key-for-testing-only",
        "SQA_DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "SQA_ENVIRONMENT": "development",
    }
)

WORKER_SECRET = "worker-shared-secret"


def _unregister_http_collectors() -> None:
    from prometheus_client import REGISTRY

    collectors = {
        collector
        for name, collector in list(REGISTRY._names_to_collectors.items())
        if name.startswith("http_")
    }
    for collector in collectors:
        REGISTRY.unregister(collector)


@pytest.fixture(autouse=True)
def clear_prometheus_registry():
    """Clear HTTP metrics so each app instance can register its own."""
    _unregister_http_collectors()
    yield
    _unregister_http_collectors()


@pytest.fixture
def settings():
    """Settings with a configured worker."""
    from site_quality_audit.api.config import APISettings

    return APISettings(
        secret_key="test-secret-key-for-testing-only-32chars",
        worker_url="https://worker.example",
        worker_secret=WORKER_SECRET,
        dispatch_min_delay_ms=0,
        dispatch_max_delay_ms=0,
    )


@pytest.fixture
def worker_session():
    """Fake aiohttp session standing in for the audit worker."""
    from tests.helpers import FakeSession

    return FakeSession()


@pytest.fixture
def app(settings, session_factory, worker_session):
    """Create app with the database and worker replaced by test doubles."""
    from site_quality_audit.api.config import get_settings
    from site_quality_audit.api.deps import get_dispatcher, get_session_factory
    from site_quality_audit.api.main import create_app
    from site_quality_audit.batch.dispatcher import RateLimitedDispatcher

    async def no_sleep(seconds: float) -> None:
        return None

    def fake_dispatcher() -> RateLimitedDispatcher:
        return RateLimitedDispatcher(
            settings.worker_url,
            worker_secret=settings.worker_secret,
            session=worker_session,
            sleep=no_sleep,
        )

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_dispatcher] = fake_dispatcher
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Test client for requests that never reach the database."""
    return TestClient(app)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async test client sharing the test's event loop and database."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_token(settings):
    """Operator token signed with the test settings."""
    from site_quality_audit.api.security import create_access_token

    return create_access_token("operator@example.com", settings)


@pytest.fixture
def auth_headers(auth_token):
    """Auth headers for authenticated requests."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def worker_headers():
    """Auth headers for worker callbacks."""
    return {"Authorization": f"Bearer {WORKER_SECRET}"}
