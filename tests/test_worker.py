import asyncio
from typing import Any

import pytest

from query_manager.v1.core.registries import JobRegistry
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.models import JobStatus
from query_manager.v1.infra.jobs.store import JobFilters
from query_manager.v1.infra.jobs.worker import JobWorker


@pytest.fixture
def worker(test_settings, store, dispatcher, lifecycle) -> JobWorker:
    return JobWorker(test_settings, store, dispatcher, lifecycle)


@pytest.fixture
def single_worker(test_settings, store, dispatcher, lifecycle) -> JobWorker:
    """One attempt per tick, so a zero-delay retry waits for the next tick."""
    settings = test_settings.model_copy(update={"job_concurrency": 1})
    return JobWorker(settings, store, dispatcher, lifecycle)


class CancelWhileRunningHandler:
    """Cancels every processing job from inside the handler."""

    payload_model = None

    def __init__(self, store):
        self.store = store

    async def handle(self, payload: dict[str, Any]) -> Any:
        page = await self.store.find_all(
            JobFilters(status=[JobStatus.PROCESSING.value])
        )
        for job in page.items:
            await self.store.cancel(job.id)
        return "finished anyway"


async def test_tick_claims_at_most_concurrency_jobs(worker, store, query_executor):
    assert worker.concurrency == 2
    for i in range(5):
        await store.enqueue("query", {"query_id": f"q{i}"})

    assert await worker.run_tick() == 2
    assert await worker.run_tick() == 2
    assert await worker.run_tick() == 1
    assert await worker.run_tick() == 0

    counts = await store.count_by_status()
    assert counts == {JobStatus.COMPLETED.value: 5}
    assert len(query_executor.calls) == 5
    assert worker.in_flight == 0


async def test_completed_job_stores_result(worker, store):
    job = await store.enqueue("report", {"report_id": "monthly"})

    await worker.run_tick()

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.COMPLETED.value
    assert stored.result["filename"] == "monthly.csv"
    assert stored.completed_at is not None


async def test_report_job_completes_on_first_attempt(
    single_worker, store, report_generator
):
    job = await store.enqueue("report", {"report_id": "monthly"})

    assert await single_worker.run_tick() == 1
    assert await single_worker.run_tick() == 0

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.COMPLETED.value
    assert stored.retry_count == 0
    assert stored.error is None
    assert report_generator.calls == [("monthly", {})]


async def test_always_failing_job_exhausts_retries(
    single_worker, store, query_executor
):
    query_executor.error = RuntimeError("syntax error near SELECT")
    job = await store.enqueue("query", {"query_id": "broken"})

    # One initial attempt plus three retries, with zero backoff
    for _ in range(4):
        assert await single_worker.run_tick() == 1
    assert await single_worker.run_tick() == 0

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.FAILED.value
    assert stored.retry_count == 3
    assert stored.scheduled_for is None
    assert stored.error == "syntax error near SELECT"
    assert len(query_executor.calls) == 4


async def test_not_found_error_is_retried_like_any_failure(single_worker, store):
    job = await store.enqueue("query", {"query_id": "missing"})

    await single_worker.run_tick()

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.PENDING.value
    assert stored.retry_count == 1


async def test_job_of_unregistered_type_fails(single_worker, store):
    job = await store.enqueue("export", {})

    for _ in range(4):
        await single_worker.run_tick()

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.FAILED.value
    assert stored.error == "Unknown job type: export"


async def test_should_claim_false_claims_nothing(
    test_settings, store, dispatcher, lifecycle
):
    worker = JobWorker(
        test_settings, store, dispatcher, lifecycle, should_claim=lambda: False
    )
    job = await store.enqueue("query", {"query_id": "q1"})

    assert await worker.run_tick() == 0
    assert (await store.find_by_id(job.id)).status == JobStatus.PENDING.value


async def test_claim_errors_are_contained(worker, store, monkeypatch):
    async def broken_claim():
        raise ConnectionError("store unavailable")

    monkeypatch.setattr(store, "claim_next", broken_claim)

    assert await worker.run_tick() == 0


async def test_cancel_during_processing_wins(test_settings, store, lifecycle):
    registry = JobRegistry()
    registry.register("slow", CancelWhileRunningHandler(store))
    worker = JobWorker(test_settings, store, JobDispatcher(registry), lifecycle)
    job = await store.enqueue("slow", {})

    assert await worker.run_tick() == 1

    stored = await store.find_by_id(job.id)
    assert stored.status == JobStatus.CANCELLED.value
    assert stored.result is None


async def test_in_flight_tracks_running_handlers(test_settings, store, lifecycle):
    started = asyncio.Event()
    release = asyncio.Event()

    class BlockingHandler:
        payload_model = None

        async def handle(self, payload):
            started.set()
            await release.wait()
            return "ok"

    registry = JobRegistry()
    registry.register("block", BlockingHandler())
    worker = JobWorker(test_settings, store, JobDispatcher(registry), lifecycle)
    await store.enqueue("block", {})

    tick = asyncio.create_task(worker.run_tick())
    await asyncio.wait_for(started.wait(), timeout=5)
    assert worker.in_flight == 1

    release.set()
    assert await tick == 1
    assert worker.in_flight == 0
