"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from site_quality_audit.db.models import Base


@pytest.fixture(scope="session")
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Keep tests independent of a developer's environment."""
    for name in ("SQA_WORKER_URL", "SQA_WORKER_SECRET", "SQA_ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SQA_SECRET_KEY", "test-secret-key-for-testing-only")


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def sample_policy_dict():
    """Sample batch policy dictionary."""
    return {
        "dispatch": {
            "min_delay_ms": 1000,
            "max_delay_ms": 3000,
            "timeout_seconds": 30,
        },
        "poll": {
            "interval_ms": 500,
            "max_attempts": 10,
        },
    }
