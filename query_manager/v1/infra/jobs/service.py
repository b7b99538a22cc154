"""
Job service for enqueueing and managing background jobs.
"""

import logging
from uuid import UUID

from fastapi import Depends, Request

from query_manager.v1.core.exceptions import InvalidTransitionError, NotFoundError
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.models import Job, JobStatus
from query_manager.v1.infra.jobs.schemas import (
    JobCreate,
    JobEnqueueResponse,
    JobResultResponse,
    JobStatsResponse,
)
from query_manager.v1.infra.jobs.store import JobFilters, JobPage, JobStore

logger = logging.getLogger(__name__)


class JobService:
    """Service for managing background jobs."""

    def __init__(self, store: JobStore, dispatcher: JobDispatcher | None = None):
        self.store = store
        self.dispatcher = dispatcher or JobDispatcher()

    async def enqueue_job(self, job_create: JobCreate) -> JobEnqueueResponse:
        """
        Validate and enqueue a new job.

        Raises:
            ValidationError: unknown job type or payload rejected by the handler
        """
        payload = self.dispatcher.validate(job_create.type, job_create.payload)

        job = await self.store.enqueue(
            job_create.type,
            payload,
            priority=job_create.priority,
            scheduled_for=job_create.scheduled_for,
        )
        return JobEnqueueResponse(job_id=job.id, status=job.status)

    async def get_job(self, job_id: UUID) -> Job:
        job = await self.store.find_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", {"job_id": str(job_id)})
        return job

    async def list_jobs(
        self,
        status: list[str] | None = None,
        job_type: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> JobPage:
        return await self.store.find_all(
            JobFilters(status=status, type=job_type), page=page, limit=limit
        )

    async def cancel_job(self, job_id: UUID) -> Job:
        """
        Cancel a pending or processing job.

        A handler that is already running is not interrupted; it just can no
        longer settle the job.
        """
        cancelled = await self.store.cancel(job_id)
        if cancelled is None:
            job = await self.get_job(job_id)
            raise InvalidTransitionError(
                job.id, job.status, JobStatus.CANCELLED.value
            )

        logger.info(
            "Job cancelled",
            extra={"job_id": str(job_id), "type": cancelled.type},
        )
        return cancelled

    async def get_job_result(self, job_id: UUID) -> JobResultResponse:
        """Result of a completed job or error of a failed one."""
        job = await self.get_job(job_id)

        if job.status == JobStatus.COMPLETED.value:
            return JobResultResponse(job_id=job.id, status=job.status, result=job.result)
        if job.status == JobStatus.FAILED.value:
            return JobResultResponse(job_id=job.id, status=job.status, error=job.error)

        raise NotFoundError(
            f"Job {job_id} has no result yet",
            {"job_id": str(job_id), "status": job.status},
        )

    async def get_job_stats(self) -> JobStatsResponse:
        by_status = await self.store.count_by_status()
        by_type = await self.store.count_by_type()

        # Queue depth (pending + processing)
        queue_depth = by_status.get(JobStatus.PENDING.value, 0) + by_status.get(
            JobStatus.PROCESSING.value, 0
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
        )


def get_job_store(request: Request) -> JobStore:
    return JobStore(request.app.state.database.SessionLocal)


def get_job_dispatcher(request: Request) -> JobDispatcher:
    return request.app.state.job_dispatcher


def get_job_service(
    store: JobStore = Depends(get_job_store),
    dispatcher: JobDispatcher = Depends(get_job_dispatcher),
) -> JobService:
    return JobService(store, dispatcher)


# Convenience type alias for dependency injection
JobServiceDep = Depends(get_job_service)
