"""
Deferred query execution endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, status

from query_manager.v1.core.exceptions import create_success_response
from query_manager.v1.infra.jobs.registry_init import QUERY_JOB
from query_manager.v1.infra.jobs.schemas import JobCreate
from query_manager.v1.infra.jobs.service import JobService, JobServiceDep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/queries", tags=["queries"])


@router.post(
    "/{query_id}/execute/async",
    response_model=dict,
    status_code=status.HTTP_202_ACCEPTED,
)
async def execute_query_async(
    query_id: str,
    parameters: dict[str, Any] | None = Body(default=None),
    job_service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Execute a stored query in the background; poll the job for the rows."""

    result = await job_service.enqueue_job(
        JobCreate(
            type=QUERY_JOB,
            payload={"query_id": query_id, "parameters": parameters or {}},
        )
    )

    logger.info(
        "Query execution deferred",
        extra={"job_id": str(result.job_id), "query_id": query_id},
    )

    return create_success_response(
        data=result.model_dump(mode="json"), message="Query execution queued"
    )
