"""
Job system Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from query_manager.v1.infra.jobs.models import JobStatus


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    type: str = Field(..., min_length=1, description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    priority: int = Field(default=0, description="Priority (higher is served first)")
    scheduled_for: datetime | None = Field(
        default=None, description="Earliest time to run job"
    )


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: dict[str, Any]
    status: JobStatus
    priority: int
    retry_count: int
    scheduled_for: datetime | None = None

    # Results
    progress: dict[str, Any] | None = None
    progress_percentage: float | None = None
    result: Any = None
    error: str | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    cancelled_at: datetime | None = None


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    items: list[JobResponse]
    total: int
    page: int
    limit: int
    pages: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + processing


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: JobStatus


class JobResultResponse(BaseModel):
    """Outcome of a finished job."""

    job_id: UUID
    status: JobStatus
    result: Any = None
    error: str | None = None


# Payloads of the built-in job types


class QueryJobPayload(BaseModel):
    """Deferred execution of a stored query."""

    query_id: str = Field(..., min_length=1, description="Stored query id")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Query parameters"
    )


class ReportJobPayload(BaseModel):
    """Deferred generation of a stored report."""

    report_id: str = Field(..., min_length=1, description="Stored report id")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Report parameters"
    )
