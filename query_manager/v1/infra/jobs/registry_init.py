"""
Job registry initialization.

Registers the built-in job handlers with the global job registry.
"""

import logging

from query_manager.config.settings import Settings
from query_manager.v1.core.registries import (
    JobRegistry,
    QueryExecutor,
    ReportGenerator,
    job_registry,
)
from query_manager.v1.infra.jobs.handlers import (
    QueryJobHandler,
    ReportJobHandler,
    load_collaborator,
)

logger = logging.getLogger(__name__)

QUERY_JOB = "query"
REPORT_JOB = "report"


def register_job_handlers(
    query_executor: QueryExecutor | None = None,
    report_generator: ReportGenerator | None = None,
    registry: JobRegistry = job_registry,
) -> None:
    """Register the query and report handlers with the job registry."""

    logger.info("Registering job handlers")

    registry.register(QUERY_JOB, QueryJobHandler(query_executor))
    registry.register(REPORT_JOB, ReportJobHandler(report_generator))

    logger.info(
        "Job handlers registered",
        extra={
            "registered_handlers": registry.list(),
            "query_executor": type(query_executor).__name__
            if query_executor
            else None,
            "report_generator": type(report_generator).__name__
            if report_generator
            else None,
        },
    )


def register_job_handlers_from_settings(settings: Settings) -> None:
    """Resolve collaborators from settings and register the handlers."""
    register_job_handlers(
        query_executor=load_collaborator(settings.query_executor),
        report_generator=load_collaborator(settings.report_generator),
    )
