"""
Job handlers for deferred query execution and report generation.

Each handler implements the JobHandler protocol and delegates the actual
work to an external collaborator. Collaborators are configured with
``module:attribute`` import paths in settings.
"""

import importlib
import logging
from typing import Any

from query_manager.v1.core.exceptions import HandlerError
from query_manager.v1.core.registries import QueryExecutor, ReportGenerator
from query_manager.v1.infra.jobs.schemas import QueryJobPayload, ReportJobPayload

logger = logging.getLogger(__name__)


def load_collaborator(path: str | None) -> Any:
    """
    Import a collaborator from a ``package.module:attribute`` path.

    Classes are instantiated without arguments; any other object is used
    as is. Returns None when no path is configured.
    """
    if not path:
        return None

    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Collaborator path must be 'module:attribute', got: {path}")

    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Could not load collaborator: {path}") from e

    return target() if isinstance(target, type) else target


class QueryJobHandler:
    """
    Executes a stored query in the background.

    Payload expected:
    {
        "query_id": "query-id",
        "parameters": {"status": "active"}  # optional
    }
    """

    payload_model = QueryJobPayload

    def __init__(self, executor: QueryExecutor | None):
        self.executor = executor

    async def handle(self, payload: dict[str, Any]) -> Any:
        if self.executor is None:
            raise HandlerError("Query execution is not configured")

        job_payload = QueryJobPayload.model_validate(payload)
        logger.info(
            "Executing deferred query", extra={"query_id": job_payload.query_id}
        )

        try:
            return await self.executor.execute(
                job_payload.query_id, job_payload.parameters
            )
        except Exception as e:
            logger.error(
                "Deferred query failed",
                extra={"query_id": job_payload.query_id, "error": str(e)},
            )
            raise  # Re-raise for job retry logic


class ReportJobHandler:
    """
    Generates a stored report in the background.

    Payload expected:
    {
        "report_id": "report-id",
        "parameters": {"from": "2024-01-01"}  # optional
    }
    """

    payload_model = ReportJobPayload

    def __init__(self, generator: ReportGenerator | None):
        self.generator = generator

    async def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.generator is None:
            raise HandlerError("Report generation is not configured")

        job_payload = ReportJobPayload.model_validate(payload)
        logger.info(
            "Generating deferred report", extra={"report_id": job_payload.report_id}
        )

        try:
            report = await self.generator.generate(
                job_payload.report_id, job_payload.parameters
            )
        except Exception as e:
            logger.error(
                "Deferred report failed",
                extra={"report_id": job_payload.report_id, "error": str(e)},
            )
            raise  # Re-raise for job retry logic

        logger.info(
            "Report generated",
            extra={
                "report_id": job_payload.report_id,
                "report_filename": report.get("filename"),
            },
        )
        return report
