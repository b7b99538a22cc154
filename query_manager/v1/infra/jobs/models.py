"""
Job record model shared by API producers and worker processes.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from query_manager.infra.database import Base, UTCDateTime, utcnow


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Job(Base):
    """
    Durable unit of deferred work.

    The column layout is the contract between every process sharing the
    store: producers insert ``pending`` rows, workers claim and settle them,
    the retention sweeper deletes terminal rows.
    """

    __tablename__ = "jobs"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job type identifier"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Job-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|completed|failed|cancelled",
    )
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Higher is served first"
    )
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Retries already consumed"
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Not claimable before this time"
    )

    # Results and progress
    progress: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Progress tracking {processed, total}"
    )
    result: Mapped[Any] = mapped_column(
        JSON, nullable=True, comment="Handler result for completed jobs"
    )
    error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Error message for failed jobs"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="jobs_status_check",
        ),
        CheckConstraint("retry_count >= 0", name="jobs_retry_count_check"),
        Index("ix_jobs_claim_order", "status", "priority", "created_at"),
        Index("ix_jobs_status_scheduled_for", "status", "scheduled_for"),
        Index("ix_jobs_type", "type"),
        Index("ix_jobs_created_at", "created_at"),
    )

    def can_retry(self, max_retries: int) -> bool:
        """Check if a failed job still has retries left."""
        return self.status == JobStatus.FAILED.value and self.retry_count < max_retries

    def get_progress_percentage(self) -> float | None:
        """Get progress as percentage if progress data is available."""
        if not self.progress or not isinstance(self.progress, dict):
            return None

        processed = self.progress.get("processed", 0)
        total = self.progress.get("total", 0)

        if total <= 0:
            return None

        return min(100.0, (processed / total) * 100.0)
