"""Worker Commands - Run the job worker outside the API process"""

import asyncio
from datetime import timedelta

import typer

from query_manager.config.logging import bind_worker_context, setup_logging
from query_manager.config.settings import Settings, get_settings
from query_manager.infra.database import Database
from query_manager.v1.infra.jobs.controller import WorkerController
from query_manager.v1.infra.jobs.registry_init import (
    register_job_handlers_from_settings,
)
from query_manager.v1.infra.jobs.store import JobStore
from query_manager.v1.infra.jobs.sweeper import RetentionSweeper

from ..utils.formatting import print_info, print_success

app = typer.Typer(name="worker", help="Job worker process commands")

DatabaseUrlOption = typer.Option(
    None, "--database-url", help="Override DATABASE_URL"
)


def _worker_settings(**overrides) -> Settings:
    updates = {key: value for key, value in overrides.items() if value is not None}
    return get_settings().model_copy(update=updates)


async def _run_worker(settings: Settings) -> None:
    database = Database(settings)
    register_job_handlers_from_settings(settings)
    controller = WorkerController(settings, JobStore(database.SessionLocal))
    bind_worker_context(controller.worker.worker_id)

    try:
        await controller.run_until_signalled()
    finally:
        await database.close()


async def _sweep(settings: Settings) -> int:
    database = Database(settings)
    try:
        sweeper = RetentionSweeper(
            JobStore(database.SessionLocal),
            timedelta(seconds=settings.job_retention_period_s),
        )
        return await sweeper.sweep()
    finally:
        await database.close()


@app.command("run")
def run_worker(
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", min=1, help="Claim attempts per tick"
    ),
    poll_interval_ms: int | None = typer.Option(
        None, "--poll-interval-ms", min=1, help="Milliseconds between ticks"
    ),
    database_url: str | None = DatabaseUrlOption,
):
    """⚙️ Process jobs until SIGINT or SIGTERM"""
    settings = _worker_settings(
        job_worker_enabled=True,
        job_concurrency=concurrency,
        job_poll_interval_ms=poll_interval_ms,
        database_url=database_url,
    )
    setup_logging(settings)

    print_info(
        f"Starting worker (concurrency: {settings.job_concurrency}, "
        f"poll interval: {settings.job_poll_interval_ms}ms)"
    )
    asyncio.run(_run_worker(settings))
    print_success("Worker stopped")


@app.command("sweep")
def sweep(
    retention_period_s: int | None = typer.Option(
        None, "--retention-period-s", min=0, help="Delete terminal jobs older than this"
    ),
    database_url: str | None = DatabaseUrlOption,
):
    """🧹 Delete finished jobs past the retention period once"""
    settings = _worker_settings(
        job_retention_period_s=retention_period_s, database_url=database_url
    )
    setup_logging(settings)

    deleted = asyncio.run(_sweep(settings))
    print_success(f"Deleted {deleted} expired jobs")
