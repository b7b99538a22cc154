"""
Retention sweeper for terminal jobs.
"""

from datetime import timedelta

from query_manager.config.logging import get_logger
from query_manager.infra.database import utcnow
from query_manager.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


class RetentionSweeper:
    """Deletes completed, failed and cancelled jobs past the retention period."""

    def __init__(self, store: JobStore, retention_period: timedelta):
        self.store = store
        self.retention_period = retention_period

    async def sweep(self) -> int:
        threshold = utcnow() - self.retention_period
        deleted_count = await self.store.delete_older_than(threshold)

        if deleted_count > 0:
            logger.info(
                "Cleaned up old jobs",
                deleted_count=deleted_count,
                threshold=threshold.isoformat(),
                retention_seconds=int(self.retention_period.total_seconds()),
            )
        return deleted_count
