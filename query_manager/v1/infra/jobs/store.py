"""
Persistent job store shared by every producer and worker process.

All mutations are single-record conditional updates. The claim is one
``UPDATE ... WHERE id = (SELECT ... FOR UPDATE SKIP LOCKED) RETURNING``
statement, so concurrent claimers (in this process or another one) can
never both take the same row.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from query_manager.infra.database import UTCDateTime, utcnow
from query_manager.v1.infra.jobs.lifecycle import sources_for
from query_manager.v1.infra.jobs.models import Job, JobStatus

logger = logging.getLogger(__name__)


def compute_backoff(
    retry_count: int, base_delay: timedelta, max_delay: timedelta
) -> timedelta:
    """
    Delay before retry number ``retry_count + 1``.

    ``min(base_delay * 2**retry_count, max_delay)``, saturating at
    ``max_delay`` without building the (possibly huge) intermediate value.
    """
    if base_delay <= timedelta(0) or retry_count < 0:
        return min(max(base_delay, timedelta(0)), max_delay)
    if base_delay >= max_delay:
        return max_delay
    if retry_count >= math.log2(max_delay / base_delay):
        return max_delay
    return min(base_delay * (2**retry_count), max_delay)


@dataclass
class JobFilters:
    status: list[str] | None = None
    type: str | None = None


@dataclass
class JobPage:
    items: list[Job]
    total: int
    page: int
    limit: int
    pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.pages = math.ceil(self.total / self.limit) if self.limit else 0


class JobStore:
    """Durable collection of job records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        priority: int = 0,
        scheduled_for: datetime | None = None,
    ) -> Job:
        """Insert a new pending job. The type is not validated here."""
        now = utcnow()
        job = Job(
            type=job_type,
            payload=payload,
            status=JobStatus.PENDING.value,
            priority=priority,
            retry_count=0,
            scheduled_for=scheduled_for,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as session:
            session.add(job)
            await session.commit()

        logger.info(
            "Job enqueued",
            extra={
                "job_id": str(job.id),
                "type": job_type,
                "priority": priority,
                "scheduled_for": scheduled_for.isoformat() if scheduled_for else None,
            },
        )
        return job

    async def claim_next(self) -> Job | None:
        """
        Atomically move the next eligible pending job to ``processing``.

        Eligible means pending with no ``scheduled_for`` or one that is due.
        Order is priority descending, then creation time ascending.
        Returns ``None`` when nothing is eligible.
        """
        now = utcnow()
        # Aliased so the subquery is not correlated against the UPDATE target
        queued = aliased(Job, name="queued")
        candidate = (
            select(queued.id)
            .where(
                queued.status == JobStatus.PENDING.value,
                or_(queued.scheduled_for.is_(None), queued.scheduled_for <= now),
            )
            .order_by(queued.priority.desc(), queued.created_at.asc(), queued.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        statement = (
            update(Job)
            .where(Job.id == candidate, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.PROCESSING.value,
                started_at=func.coalesce(Job.started_at, literal(now, UTCDateTime())),
                updated_at=now,
            )
            .returning(Job)
        )
        return await self._execute_returning(statement)

    async def complete(self, job_id: UUID, result: Any) -> Job | None:
        """Store the result of a processing job."""
        now = utcnow()
        return await self._transition(
            job_id,
            JobStatus.COMPLETED,
            result=result,
            error=None,
            completed_at=now,
            scheduled_for=None,
            updated_at=now,
        )

    async def fail(self, job_id: UUID, error_message: str) -> Job | None:
        """Record the error of a processing job."""
        now = utcnow()
        return await self._transition(
            job_id,
            JobStatus.FAILED,
            error=error_message,
            result=None,
            failed_at=now,
            scheduled_for=None,
            updated_at=now,
        )

    async def schedule_retry(
        self, job_id: UUID, base_delay: timedelta, max_delay: timedelta
    ) -> Job | None:
        """
        Put a failed job back in the queue after an exponential delay.

        The delay uses the retry count before the increment. The update is
        a compare-and-swap on ``(status, retry_count)`` so a concurrent
        retry of the same job cannot double-increment it.
        """
        job = await self.find_by_id(job_id)
        if job is None or job.status != JobStatus.FAILED.value:
            return None

        now = utcnow()
        delay = compute_backoff(job.retry_count, base_delay, max_delay)
        statement = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status.in_(sources_for(JobStatus.PENDING)),
                Job.retry_count == job.retry_count,
            )
            .values(
                status=JobStatus.PENDING.value,
                retry_count=job.retry_count + 1,
                scheduled_for=now + delay,
                error=None,
                failed_at=None,
                updated_at=now,
            )
            .returning(Job)
        )
        return await self._execute_returning(statement)

    async def cancel(self, job_id: UUID) -> Job | None:
        """Cancel a pending or processing job.

        A running handler is not interrupted; it only loses the ability to
        settle the job afterwards.
        """
        now = utcnow()
        return await self._transition(
            job_id,
            JobStatus.CANCELLED,
            cancelled_at=now,
            scheduled_for=None,
            updated_at=now,
        )

    async def update_progress(
        self, job_id: UUID, progress: dict[str, Any]
    ) -> Job | None:
        """Replace the progress document of a processing job."""
        statement = (
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.PROCESSING.value)
            .values(progress=progress, updated_at=utcnow())
            .returning(Job)
        )
        return await self._execute_returning(statement)

    async def find_by_id(self, job_id: UUID) -> Job | None:
        async with self._session_factory() as session:
            return await session.get(Job, job_id)

    async def find_all(
        self,
        filters: JobFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> JobPage:
        """List jobs newest first."""
        filters = filters or JobFilters()
        page = max(page, 1)

        query = select(Job)
        if filters.status:
            query = query.where(Job.status.in_(filters.status))
        if filters.type:
            query = query.where(Job.type == filters.type)

        async with self._session_factory() as session:
            total_result = await session.execute(
                select(func.count()).select_from(query.subquery())
            )
            total = total_result.scalar() or 0

            jobs_result = await session.execute(
                query.order_by(Job.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = list(jobs_result.scalars().all())

        return JobPage(items=items, total=total, page=page, limit=limit)

    async def delete_older_than(self, threshold: datetime) -> int:
        """Delete terminal jobs whose terminal timestamp is before ``threshold``."""
        statement = delete(Job).where(
            or_(
                and_(
                    Job.status == JobStatus.COMPLETED.value,
                    Job.completed_at < threshold,
                ),
                and_(
                    Job.status == JobStatus.FAILED.value,
                    Job.failed_at < threshold,
                ),
                and_(
                    Job.status == JobStatus.CANCELLED.value,
                    Job.cancelled_at < threshold,
                ),
            )
        )

        async with self._session_factory() as session:
            result = await session.execute(
                statement, execution_options={"synchronize_session": False}
            )
            await session.commit()

        return result.rowcount or 0

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job.status, func.count(Job.id)).group_by(Job.status)
            )
            return {status: count for status, count in result.all()}

    async def count_by_type(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job.type, func.count(Job.id)).group_by(Job.type)
            )
            return {job_type: count for job_type, count in result.all()}

    async def _transition(
        self, job_id: UUID, target: JobStatus, **values: Any
    ) -> Job | None:
        statement = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_(sources_for(target)))
            .values(status=target.value, **values)
            .returning(Job)
        )
        return await self._execute_returning(statement)

    async def _execute_returning(self, statement) -> Job | None:
        async with self._session_factory() as session:
            result = await session.execute(
                statement, execution_options={"synchronize_session": False}
            )
            job = result.scalars().first()
            await session.commit()
            return job
