"""
Deferred report generation endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, status

from query_manager.v1.core.exceptions import create_success_response
from query_manager.v1.infra.jobs.registry_init import REPORT_JOB
from query_manager.v1.infra.jobs.schemas import JobCreate
from query_manager.v1.infra.jobs.service import JobService, JobServiceDep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reports", tags=["reports"])


@router.post(
    "/{report_id}/generate/async",
    response_model=dict,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_report_async(
    report_id: str,
    parameters: dict[str, Any] | None = Body(default=None),
    job_service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Generate a stored report in the background."""

    result = await job_service.enqueue_job(
        JobCreate(
            type=REPORT_JOB,
            payload={"report_id": report_id, "parameters": parameters or {}},
        )
    )

    logger.info(
        "Report generation deferred",
        extra={"job_id": str(result.job_id), "report_id": report_id},
    )

    return create_success_response(
        data=result.model_dump(mode="json"), message="Report generation queued"
    )
