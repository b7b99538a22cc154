"""
Job state machine and the settle step that applies handler outcomes.
"""

from datetime import timedelta
from typing import Any

from query_manager.config.logging import get_logger
from query_manager.v1.core.exceptions import InvalidTransitionError
from query_manager.v1.infra.jobs.models import Job, JobStatus

logger = get_logger(__name__)

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    """Check whether ``current -> target`` is an allowed status change."""
    return JobStatus(target) in TRANSITIONS[JobStatus(current)]


def sources_for(target: JobStatus | str) -> list[str]:
    """Statuses a job may be in for a move to ``target`` to be valid.

    The store uses this as the ``WHERE status IN (...)`` guard of its
    conditional updates, so a disallowed move simply matches no row.
    """
    target = JobStatus(target)
    return sorted(
        source.value for source, targets in TRANSITIONS.items() if target in targets
    )


def is_terminal(status: JobStatus | str) -> bool:
    """``failed`` counts as terminal; a retry is an explicit new transition."""
    return JobStatus(status) in TERMINAL_STATUSES


class JobLifecycle:
    """
    Applies the outcome of an execution attempt to a claimed job.

    Settling is done with the store's conditional updates. When the stored
    record is no longer in a state that allows the move (e.g. it was
    cancelled while the handler ran) the update matches nothing and the
    invalid transition is logged, never raised.
    """

    def __init__(
        self,
        store,
        max_retries: int,
        retry_delay: timedelta,
        max_retry_delay: timedelta,
    ):
        self.store = store
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay

    @classmethod
    def from_settings(cls, store, settings) -> "JobLifecycle":
        return cls(
            store,
            max_retries=settings.job_max_retries,
            retry_delay=timedelta(milliseconds=settings.job_retry_delay_ms),
            max_retry_delay=timedelta(milliseconds=settings.job_max_retry_delay_ms),
        )

    async def complete(self, job: Job, result: Any) -> Job | None:
        """Move a processing job to ``completed`` with its result."""
        updated = await self.store.complete(job.id, result)
        if updated is None:
            await self._report_invalid(job, JobStatus.COMPLETED)
            return None

        logger.info("Job completed", job_id=str(job.id), job_type=job.type)
        return updated

    async def fail(self, job: Job, error: str) -> Job | None:
        """
        Record a failed attempt and schedule a retry while retries remain.

        ``max_retries`` counts retries after the initial attempt, so a job
        runs at most ``max_retries + 1`` times.
        """
        failed = await self.store.fail(job.id, error)
        if failed is None:
            await self._report_invalid(job, JobStatus.FAILED)
            return None

        if not failed.can_retry(self.max_retries):
            logger.error(
                "Job failed permanently",
                job_id=str(job.id),
                job_type=job.type,
                retry_count=failed.retry_count,
                error=error,
            )
            return failed

        retried = await self.store.schedule_retry(
            job.id, self.retry_delay, self.max_retry_delay
        )
        if retried is None:
            await self._report_invalid(failed, JobStatus.PENDING)
            return failed

        logger.warning(
            "Job scheduled for retry",
            job_id=str(job.id),
            job_type=job.type,
            retry_count=retried.retry_count,
            scheduled_for=retried.scheduled_for.isoformat()
            if retried.scheduled_for
            else None,
            error=error,
        )
        return retried

    async def _report_invalid(self, job: Job, target: JobStatus) -> None:
        current = await self.store.find_by_id(job.id)
        exc = InvalidTransitionError(
            job.id, current.status if current else None, target.value
        )
        logger.warning(
            "Ignored invalid job transition",
            job_id=str(job.id),
            current=exc.current,
            target=exc.target,
            message=exc.message,
        )
