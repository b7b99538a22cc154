import asyncio
import os
import signal
import sys
from datetime import timedelta

import pytest

from query_manager.infra.database import utcnow
from query_manager.v1.core.registries import JobRegistry
from query_manager.v1.infra.jobs.controller import WorkerController
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.models import JobStatus


@pytest.fixture
def controller(test_settings, store, dispatcher) -> WorkerController:
    return WorkerController(test_settings, store, dispatcher)


async def wait_for_status(store, job_id, status: JobStatus, timeout: float = 5.0):
    async def _poll():
        while (await store.find_by_id(job_id)).status != status.value:
            await asyncio.sleep(0.02)

    await asyncio.wait_for(_poll(), timeout=timeout)


async def test_start_disabled_is_a_noop(test_settings, store, dispatcher):
    settings = test_settings.model_copy(update={"job_worker_enabled": False})
    controller = WorkerController(settings, store, dispatcher)

    assert await controller.start() is False
    assert controller.is_running is False
    assert controller.status()["enabled"] is False


async def test_double_start_and_stop(controller):
    assert await controller.start() is True
    assert await controller.start() is False
    assert controller.is_running

    assert await controller.stop() is True
    assert await controller.stop() is False
    assert not controller.is_running


async def test_stop_when_never_started(controller):
    assert await controller.stop() is False


async def test_processes_jobs_until_stopped(controller, store):
    jobs = [await store.enqueue("query", {"query_id": f"q{i}"}) for i in range(3)]

    await controller.start()
    try:
        for job in jobs:
            await wait_for_status(store, job.id, JobStatus.COMPLETED)
    finally:
        await controller.stop()

    # Jobs enqueued after stop stay pending
    late = await store.enqueue("query", {"query_id": "late"})
    await asyncio.sleep(0.15)
    assert (await store.find_by_id(late.id)).status == JobStatus.PENDING.value


async def test_stop_drains_in_flight_jobs(test_settings, store):
    started = asyncio.Event()

    class SlowHandler:
        payload_model = None

        async def handle(self, payload):
            started.set()
            await asyncio.sleep(0.05)
            return "done"

    registry = JobRegistry()
    registry.register("slow", SlowHandler())
    settings = test_settings.model_copy(update={"job_poll_interval_ms": 1000})
    controller = WorkerController(settings, store, JobDispatcher(registry))
    job = await store.enqueue("slow", {})

    await controller.start()
    await asyncio.wait_for(started.wait(), timeout=5)
    await controller.stop()

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.COMPLETED.value
    assert controller.worker.in_flight == 0


async def test_stop_waits_one_poll_interval_when_idle(test_settings, store):
    settings = test_settings.model_copy(update={"job_poll_interval_ms": 200})
    controller = WorkerController(settings, store, JobDispatcher(JobRegistry()))
    loop = asyncio.get_running_loop()

    await controller.start()
    stopping_at = loop.time()
    await controller.stop()

    assert loop.time() - stopping_at >= 0.19


async def test_status(controller, test_settings):
    status = controller.status()

    assert status == {
        "enabled": True,
        "running": False,
        "worker_id": controller.worker.worker_id,
        "concurrency": test_settings.job_concurrency,
        "poll_interval_ms": test_settings.job_poll_interval_ms,
        "active_jobs": 0,
    }


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
async def test_run_until_signalled(controller, store):
    job = await store.enqueue("query", {"query_id": "q1"})

    runner = asyncio.create_task(controller.run_until_signalled())
    await wait_for_status(store, job.id, JobStatus.COMPLETED)
    assert controller.is_running

    os.kill(os.getpid(), signal.SIGTERM)
    await asyncio.wait_for(runner, timeout=5)

    assert not controller.is_running


async def test_sweeper_loop_runs_on_interval(test_settings, store, set_fields):
    settings = test_settings.model_copy(
        update={"job_cleanup_interval_s": 0.05, "job_retention_period_s": 60}
    )
    controller = WorkerController(settings, store)
    job = await store.enqueue("query", {"query_id": "q1"})
    await store.cancel(job.id)
    await set_fields(job.id, cancelled_at=utcnow() - timedelta(minutes=5))

    async def _gone():
        while await store.find_by_id(job.id) is not None:
            await asyncio.sleep(0.02)

    await controller.start()
    try:
        await asyncio.wait_for(_gone(), timeout=5)
    finally:
        await controller.stop()
