import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, update

from query_manager.config.settings import Settings
from query_manager.infra.database import Database
from query_manager.main import create_app
from query_manager.v1.core.exceptions import NotFoundError
from query_manager.v1.core.registries import JobRegistry
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.lifecycle import JobLifecycle
from query_manager.v1.infra.jobs.models import Job
from query_manager.v1.infra.jobs.registry_init import register_job_handlers
from query_manager.v1.infra.jobs.store import JobStore


class FakeQueryExecutor:
    """In-memory query collaborator that records its calls."""

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.rows: Any = [{"id": 1, "status": "active"}]
        self.error: Exception | None = None

    async def execute(self, query_id: str, parameters: dict[str, Any]) -> Any:
        self.calls.append((query_id, parameters))
        if query_id == "missing":
            raise NotFoundError(f"Query {query_id} not found")
        if self.error is not None:
            raise self.error
        return self.rows


class FakeReportGenerator:
    """In-memory report collaborator."""

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(
        self, report_id: str, parameters: dict[str, Any]
    ) -> dict[str, Any]:
        self.calls.append((report_id, parameters))
        return {
            "filename": f"{report_id}.csv",
            "path": f"/tmp/reports/{report_id}.csv",
            "content_type": "text/csv",
        }


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings for a fast worker on a throwaway database.

    Uses PostgreSQL when DATABASE_URL points at one, SQLite otherwise.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url or "postgresql" not in database_url:
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"

    return Settings(
        database_url=database_url,
        environment="development",
        job_worker_enabled=True,
        job_poll_interval_ms=50,
        job_concurrency=2,
        job_max_retries=3,
        job_retry_delay_ms=0,
        job_max_retry_delay_ms=0,
        job_retention_period_s=3600,
        job_cleanup_interval_s=3600,
    )


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Create the schema and clean up jobs after each test."""
    db = Database(test_settings)
    await db.create_all()

    yield db

    async with db.SessionLocal() as session:
        await session.execute(delete(Job))
        await session.commit()
    await db.close()


@pytest.fixture
def store(database) -> JobStore:
    return JobStore(database.SessionLocal)


@pytest.fixture
def query_executor() -> FakeQueryExecutor:
    return FakeQueryExecutor()


@pytest.fixture
def report_generator() -> FakeReportGenerator:
    return FakeReportGenerator()


@pytest.fixture
def registry(query_executor, report_generator) -> JobRegistry:
    """A private job registry so tests never touch the global one."""
    registry = JobRegistry()
    register_job_handlers(query_executor, report_generator, registry=registry)
    return registry


@pytest.fixture
def dispatcher(registry) -> JobDispatcher:
    return JobDispatcher(registry)


@pytest.fixture
def lifecycle(store, test_settings) -> JobLifecycle:
    return JobLifecycle.from_settings(store, test_settings)


@pytest.fixture
def app(test_settings, database, dispatcher):
    """Create a test FastAPI application with the test database."""
    return create_app(test_settings, database, dispatcher)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def set_fields(database):
    """Force column values that the store never writes directly."""

    async def _set_fields(job_id, **values):
        async with database.SessionLocal() as session:
            await session.execute(update(Job).where(Job.id == job_id).values(**values))
            await session.commit()

    return _set_fields
