from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text

from query_manager.config.logging import get_logger
from query_manager.config.settings import Settings
from query_manager.infra.database import Database
from query_manager.v1.core.exceptions import create_success_response
from query_manager.v1.infra.jobs.models import JobStatus
from query_manager.v1.infra.jobs.store import JobStore

router = APIRouter()
logger = get_logger(__name__)


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class WorkerHealth(BaseModel):
    """Worker health status."""

    enabled: bool
    running: bool
    worker_id: str | None = None
    active_jobs: int = 0
    queue_depth: int | None = None


class HealthResponse(BaseModel):
    """Health response with worker and database status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    worker: WorkerHealth


@router.get("/healthz", response_model=dict)
async def health_check(request: Request):
    """Health check endpoint with database and worker status."""

    settings: Settings = request.app.state.settings
    database: Database = request.app.state.database

    db_health = await _check_database_health(database)
    worker_health = await _check_worker_health(request, database, settings)

    health = HealthResponse(
        ok=db_health.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        database=db_health,
        worker=worker_health,
    )

    return create_success_response(data=health.model_dump())


async def _check_database_health(database: Database) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        return DatabaseHealth(connected=False, error=str(e))


async def _check_worker_health(
    request: Request, database: Database, settings: Settings
) -> WorkerHealth:
    """Worker status of this process and the shared queue depth."""
    controller = getattr(request.app.state, "job_controller", None)
    if controller is not None:
        worker = WorkerHealth(**controller.status())
    else:
        worker = WorkerHealth(enabled=settings.job_worker_enabled, running=False)

    # Queue depth failure doesn't fail overall health; the database check covers it
    try:
        by_status = await JobStore(database.SessionLocal).count_by_status()
        worker.queue_depth = by_status.get(JobStatus.PENDING.value, 0) + by_status.get(
            JobStatus.PROCESSING.value, 0
        )
    except Exception as e:
        logger.warning("Queue depth check failed", error=str(e))

    return worker
