"""
Start/stop orchestration for the job worker and the retention sweeper.
"""

import asyncio
import signal
from datetime import timedelta
from typing import Any

from query_manager.config.logging import get_logger
from query_manager.config.settings import Settings
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.lifecycle import JobLifecycle
from query_manager.v1.infra.jobs.store import JobStore
from query_manager.v1.infra.jobs.sweeper import RetentionSweeper
from query_manager.v1.infra.jobs.worker import JobWorker

logger = get_logger(__name__)


class WorkerController:
    """
    Owns the "is the worker running" state of a process.

    ``start`` fires one tick immediately and then one every polling
    interval. Ticks are launched on the timer, not chained on completion,
    so a slow tick never causes extra claims. ``stop`` halts the timers,
    prevents new claims and waits up to one polling interval for the
    attempts already in flight.
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        dispatcher: JobDispatcher | None = None,
    ):
        self.settings = settings
        self.store = store
        self.dispatcher = dispatcher or JobDispatcher()
        self.lifecycle = JobLifecycle.from_settings(store, settings)
        self.worker = JobWorker(
            settings,
            store,
            self.dispatcher,
            self.lifecycle,
            should_claim=lambda: self._running,
        )
        self.sweeper = RetentionSweeper(
            store, timedelta(seconds=settings.job_retention_period_s)
        )

        self._running = False
        self._lock = asyncio.Lock()
        self._tick_timer: asyncio.Task | None = None
        self._sweep_timer: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def poll_interval(self) -> float:
        return self.settings.job_poll_interval_ms / 1000

    async def start(self) -> bool:
        """Start ticking. Returns False when already running or disabled."""
        async with self._lock:
            if self._running:
                logger.warning("Job worker is already running")
                return False

            if not self.settings.job_worker_enabled:
                logger.info("Job worker is disabled")
                return False

            self._running = True
            logger.info(
                "Starting job worker",
                worker_id=self.worker.worker_id,
                concurrency=self.settings.job_concurrency,
                poll_interval_ms=self.settings.job_poll_interval_ms,
                max_retries=self.settings.job_max_retries,
            )

            self._tick_timer = asyncio.create_task(
                self._tick_loop(), name="job-worker-ticks"
            )
            self._sweep_timer = asyncio.create_task(
                self._sweep_loop(), name="job-retention-sweeper"
            )
            return True

    async def stop(self) -> bool:
        """Stop ticking and wait one polling interval for in-flight attempts.

        The wait always lasts at least one interval. Attempts still running
        after it are logged and left to finish on their own.
        """
        async with self._lock:
            if not self._running:
                logger.warning("Job worker is not running")
                return False

            self._running = False
            logger.info("Stopping job worker", worker_id=self.worker.worker_id)

            timers = [t for t in (self._tick_timer, self._sweep_timer) if t]
            for timer in timers:
                timer.cancel()
            await asyncio.gather(*timers, return_exceptions=True)
            self._tick_timer = None
            self._sweep_timer = None

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.poll_interval
            pending = set(self._ticks)
            if pending:
                _, pending = await asyncio.wait(pending, timeout=self.poll_interval)
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            pending = {tick for tick in pending if not tick.done()}

            if pending:
                logger.warning(
                    "Worker stopped with active jobs",
                    worker_id=self.worker.worker_id,
                    active_jobs=self.worker.in_flight,
                )
            else:
                logger.info("Job worker stopped", worker_id=self.worker.worker_id)
            return True

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.settings.job_worker_enabled,
            "running": self._running,
            "worker_id": self.worker.worker_id,
            "concurrency": self.settings.job_concurrency,
            "poll_interval_ms": self.settings.job_poll_interval_ms,
            "active_jobs": self.worker.in_flight,
        }

    async def run_until_signalled(self) -> None:
        """Run until SIGINT or SIGTERM, then stop gracefully."""
        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()

        handled: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
                handled.append(sig)
            except NotImplementedError:
                # Windows event loops; Ctrl+C surfaces as KeyboardInterrupt
                logger.debug("Signal handlers unavailable", signal=sig.name)

        try:
            if not await self.start():
                return
            await shutdown.wait()
            logger.info("Received shutdown signal, initiating graceful shutdown")
        finally:
            for sig in handled:
                loop.remove_signal_handler(sig)
            if self._running:
                await self.stop()

    def _launch_tick(self) -> None:
        task = asyncio.create_task(self._run_tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _run_tick(self) -> None:
        try:
            await self.worker.run_tick()
        except Exception:
            logger.exception("Error in job processing", worker_id=self.worker.worker_id)

    async def _tick_loop(self) -> None:
        while self._running:
            self._launch_tick()
            await asyncio.sleep(self.poll_interval)

    async def _sweep_loop(self) -> None:
        interval = self.settings.job_cleanup_interval_s
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.sweeper.sweep()
            except Exception:
                logger.exception("Error cleaning up jobs")
