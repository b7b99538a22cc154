"""
Job management API endpoints.

Provides endpoints for job enqueueing, monitoring and cancellation.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, status

from query_manager.v1.core.exceptions import create_success_response
from query_manager.v1.infra.jobs.models import JobStatus
from query_manager.v1.infra.jobs.schemas import (
    JobCreate,
    JobListResponse,
    JobResponse,
)
from query_manager.v1.infra.jobs.service import JobService, JobServiceDep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_response(job) -> JobResponse:
    job_data = JobResponse.model_validate(job)
    job_data.progress_percentage = job.get_progress_percentage()
    return job_data


@router.post("", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_job(
    job_create: JobCreate,
    job_service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Enqueue a new background job."""

    result = await job_service.enqueue_job(job_create)

    logger.info(
        "Job enqueued via API",
        extra={"job_id": str(result.job_id), "type": job_create.type},
    )

    return create_success_response(data=result.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    type: str | None = Query(default=None, description="Filter by job type"),
    page: int = Query(default=1, ge=1, description="Page number"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
    job_service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination, newest first."""

    status_values = [s.value for s in status] if status else None
    job_page = await job_service.list_jobs(
        status=status_values, job_type=type, page=page, limit=limit
    )

    response_data = JobListResponse(
        items=[_job_response(job) for job in job_page.items],
        total=job_page.total,
        page=job_page.page,
        limit=job_page.limit,
        pages=job_page.pages,
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(job_service: JobService = JobServiceDep) -> dict[str, Any]:
    """Get job counts by status and type."""

    stats = await job_service.get_job_stats()
    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID, job_service: JobService = JobServiceDep
) -> dict[str, Any]:
    """Get a specific job by ID."""

    job = await job_service.get_job(job_id)
    return create_success_response(data=_job_response(job).model_dump(mode="json"))


@router.get("/{job_id}/result", response_model=dict)
async def get_job_result(
    job_id: UUID, job_service: JobService = JobServiceDep
) -> dict[str, Any]:
    """Get the result of a completed job or the error of a failed one."""

    result = await job_service.get_job_result(job_id)
    return create_success_response(data=result.model_dump(mode="json"))


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(
    job_id: UUID, job_service: JobService = JobServiceDep
) -> dict[str, Any]:
    """Cancel a pending or processing job."""

    job = await job_service.cancel_job(job_id)

    logger.info("Job cancelled via API", extra={"job_id": str(job_id)})

    return create_success_response(
        data=_job_response(job).model_dump(mode="json"), message="Job cancelled"
    )
