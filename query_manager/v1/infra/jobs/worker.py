"""
Bounded-concurrency job worker: claims, dispatches and settles jobs.
"""

import asyncio
import os
import socket
from typing import Callable

from query_manager.config.logging import get_logger
from query_manager.config.settings import Settings
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.lifecycle import JobLifecycle
from query_manager.v1.infra.jobs.models import Job
from query_manager.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


class JobWorker:
    """
    Runs one batch of claim-and-process attempts per tick.

    Features:
    - Exactly ``concurrency`` independent attempts per tick
    - Atomic claims through the job store, safe across processes
    - Handler failures routed to the lifecycle retry logic
    - Store errors contained to the attempt that raised them

    The worker does not schedule itself; ``WorkerController`` fires ticks.
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        dispatcher: JobDispatcher,
        lifecycle: JobLifecycle,
        should_claim: Callable[[], bool] | None = None,
    ):
        self.settings = settings
        self.store = store
        self.dispatcher = dispatcher
        self.lifecycle = lifecycle
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self._should_claim = should_claim or (lambda: True)
        self._in_flight: set[asyncio.Task] = set()

    @property
    def concurrency(self) -> int:
        return self.settings.job_concurrency

    @property
    def in_flight(self) -> int:
        """Number of claimed jobs whose handler has not settled yet."""
        return len(self._in_flight)

    async def run_tick(self) -> int:
        """
        Launch ``concurrency`` attempts and wait for all of them.

        Returns the number of jobs claimed during the tick.
        """
        outcomes = await asyncio.gather(
            *(self._attempt(slot) for slot in range(self.concurrency))
        )
        claimed = sum(1 for outcome in outcomes if outcome)

        if claimed:
            logger.debug(
                "Worker tick finished",
                worker_id=self.worker_id,
                claimed=claimed,
                concurrency=self.concurrency,
            )
        return claimed

    async def _attempt(self, slot: int) -> bool:
        """Claim at most one job and process it. Never raises."""
        if not self._should_claim():
            return False

        try:
            job = await self.store.claim_next()
        except Exception:
            logger.exception("Failed to claim job", worker_id=self.worker_id, slot=slot)
            return False

        if job is None:
            return False

        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            await self._process_job(job)
        except Exception:
            logger.exception(
                "Failed to settle job",
                worker_id=self.worker_id,
                job_id=str(job.id),
                job_type=job.type,
            )
        finally:
            self._in_flight.discard(task)
        return True

    async def _process_job(self, job: Job) -> None:
        """Dispatch a claimed job and apply the outcome exactly once."""
        log = logger.bind(
            worker_id=self.worker_id,
            job_id=str(job.id),
            job_type=job.type,
            retry_count=job.retry_count,
        )
        log.info("Processing job started")

        try:
            result = await self.dispatcher.dispatch(job.type, job.payload)
        except Exception as e:
            log.warning(
                "Processing job failed", error=str(e), exception=type(e).__name__
            )
            await self.lifecycle.fail(job, str(e) or type(e).__name__)
            return

        await self.lifecycle.complete(job, result)
