from collections.abc import AsyncGenerator, Generator

import pytest
from fastapi.testclient import TestClient

from downloader.config.settings import Settings
from downloader.infra.database import Database
from downloader.main import create_app
from downloader.v1.jobs.checkers import MockItemChecker
from downloader.v1.jobs.store import JobStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings backed by a throwaway SQLite file, workers off."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/jobs.db",
        run_workers=False,
        job_poll_interval_ms=20,
        job_backoff_base_ms=0,
        job_lease_seconds=30.0,
        job_max_attempts=3,
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Database with the job table created."""
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database, settings: Settings) -> JobStore:
    return JobStore(database.SessionLocal, max_attempts=settings.job_max_attempts)


@pytest.fixture
def checker() -> MockItemChecker:
    return MockItemChecker(divisor=7, base_url="https://storage.example.com")


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """Test client running the app lifespan (database, service, no workers)."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def client_with_workers(settings: Settings) -> Generator[TestClient, None, None]:
    """Test client with the in-process worker pool running."""
    app = create_app(
        settings.model_copy(update={"run_workers": True, "job_concurrency": 2})
    )
    with TestClient(app) as test_client:
        yield test_client
