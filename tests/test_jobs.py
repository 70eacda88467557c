"""Tests for job dispatch, backoff and the retrying worker."""

from datetime import timedelta

import pytest

from consultai.contracts.enums import JobState, JobType
from consultai.contracts.reasons import ReasonCode
from consultai.core.errors import BudgetExceeded, JobExhausted, TenantNotFound
from consultai.jobs import (
    AsyncJob,
    BackoffPolicy,
    InMemoryJobQueue,
    JobDispatcher,
    JobOutcome,
    JobWorker,
)


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def dispatcher(queue, clock):
    return JobDispatcher(queue, clock=clock)


class RecordingHandler:
    """Handler that fails a set number of times before succeeding."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or RuntimeError("transient failure")
        self.calls: list[AsyncJob] = []

    async def __call__(self, job: AsyncJob) -> None:
        self.calls.append(job)
        if len(self.calls) <= self.failures:
            raise self.error


class TestBackoffPolicy:
    """Test exponential backoff delays."""

    def test_doubles_per_retry(self) -> None:
        policy = BackoffPolicy(base_seconds=2)
        assert [policy.delay_before_retry(k) for k in (1, 2, 3)] == [2, 4, 8]

    def test_capped(self) -> None:
        policy = BackoffPolicy(base_seconds=2, max_seconds=300)
        assert policy.delay_before_retry(9) == 300
        assert policy.delay_before_retry(10_000) == 300

    def test_retry_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BackoffPolicy().delay_before_retry(0)


class TestJobDispatcher:
    """Test enqueueing and inspecting jobs."""

    @pytest.mark.asyncio
    async def test_per_type_defaults(self, dispatcher, queue) -> None:
        single_id = await dispatcher.enqueue_summary("k1", "u1")
        batch_id = await dispatcher.enqueue_batch_summary("u1", ["k1", "k2"])

        single = await queue.get_job(single_id)
        batch = await queue.get_job(batch_id)
        assert (single.max_attempts, single.backoff.base_seconds) == (3, 2.0)
        assert (batch.max_attempts, batch.backoff.base_seconds) == (2, 5.0)
        assert batch.payload["items"] == [{"id": "k1"}, {"id": "k2"}]

    @pytest.mark.asyncio
    async def test_batch_without_items(self, dispatcher, queue) -> None:
        job = await queue.get_job(await dispatcher.enqueue_batch_summary("u1"))
        assert "items" not in job.payload

    @pytest.mark.asyncio
    async def test_delay(self, dispatcher, queue, clock) -> None:
        job = await queue.get_job(
            await dispatcher.enqueue(JobType.EMBEDDING, {"entry_id": "k1"}, delay_seconds=30)
        )
        assert job.available_at == clock.now() + timedelta(seconds=30)
        assert await queue.claim(clock.now()) == []

    @pytest.mark.asyncio
    async def test_negative_delay_rejected(self, dispatcher) -> None:
        with pytest.raises(ValueError):
            await dispatcher.enqueue(JobType.EMBEDDING, {}, delay_seconds=-1)

    @pytest.mark.asyncio
    async def test_dedupe_while_live(self, dispatcher, queue, clock) -> None:
        first = await dispatcher.enqueue(JobType.EMBEDDING, {"entry_id": "k1"}, dedupe_key="emb:k1")
        second = await dispatcher.enqueue(JobType.EMBEDDING, {"entry_id": "k1"}, dedupe_key="emb:k1")
        assert first == second

        [claimed] = await queue.claim(clock.now())
        await queue.complete(claimed)
        third = await dispatcher.enqueue(JobType.EMBEDDING, {"entry_id": "k1"}, dedupe_key="emb:k1")
        assert third != first

    @pytest.mark.asyncio
    async def test_claim_order_priority_then_fifo(self, dispatcher, queue, clock) -> None:
        low = await dispatcher.enqueue_embedding("k1", "u1", priority=5)
        first = await dispatcher.enqueue_embedding("k2", "u1")
        second = await dispatcher.enqueue_embedding("k3", "u1")

        claimed = await queue.claim(clock.now(), limit=3)
        assert [j.job_id for j in claimed] == [first, second, low]
        assert all(j.state == JobState.ACTIVE for j in claimed)

    @pytest.mark.asyncio
    async def test_queue_status(self, dispatcher, queue, clock) -> None:
        await dispatcher.enqueue_embedding("k1", "u1")
        await dispatcher.enqueue_embedding("k2", "u1")
        await queue.claim(clock.now())

        status = await dispatcher.get_queue_status()
        assert status["name"] == "knowledge-summary"
        assert status["job_counts"] == {"waiting": 1, "active": 1, "completed": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_check_job(self, dispatcher, queue, clock) -> None:
        job_id = await dispatcher.enqueue_embedding("k1", "u1")
        assert (await dispatcher.check_job(job_id)).state == JobState.QUEUED

        with pytest.raises(KeyError):
            await dispatcher.check_job("missing")

        [claimed] = await queue.claim(clock.now())
        await queue.dead_letter(claimed, "boom", ReasonCode.MAX_ATTEMPTS_EXCEEDED)
        with pytest.raises(JobExhausted) as exc_info:
            await dispatcher.check_job(job_id)
        assert exc_info.value.last_error == "boom"

    @pytest.mark.asyncio
    async def test_resubmit(self, dispatcher, queue, clock) -> None:
        job_id = await dispatcher.enqueue_summary("k1", "u1", priority=3)
        with pytest.raises(ValueError):
            await dispatcher.resubmit(job_id)

        [claimed] = await queue.claim(clock.now())
        await queue.dead_letter(claimed, "boom", ReasonCode.MAX_ATTEMPTS_EXCEEDED)
        new_id = await dispatcher.resubmit(job_id)

        fresh = await queue.get_job(new_id)
        assert new_id != job_id
        assert fresh.state == JobState.QUEUED
        assert fresh.attempts_made == 0
        assert fresh.priority == 3
        assert fresh.payload["entry_id"] == "k1"


class TestJobWorker:
    """Test retries, backoff and dead-lettering."""

    @pytest.mark.asyncio
    async def test_success(self, dispatcher, queue, clock) -> None:
        handler = RecordingHandler()
        worker = JobWorker(queue, {JobType.EMBEDDING: handler}, clock=clock)
        job_id = await dispatcher.enqueue_embedding("k1", "u1")

        assert await worker.run_once() == 1
        assert (await queue.get_job(job_id)).state == JobState.COMPLETED
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_retries_wait_for_backoff_then_dead_letter(self, dispatcher, queue, clock) -> None:
        handler = RecordingHandler(failures=10)
        worker = JobWorker(queue, {JobType.SUMMARY: handler}, clock=clock)
        job_id = await dispatcher.enqueue_summary("k1", "u1")

        assert await worker.run_once() == 1
        job = await queue.get_job(job_id)
        assert job.state == JobState.QUEUED
        assert job.attempts_made == 1
        assert job.available_at == clock.now() + timedelta(seconds=2)

        # never retried immediately
        assert await worker.run_once() == 0
        clock.advance(seconds=1)
        assert await worker.run_once() == 0

        clock.advance(seconds=1)
        assert await worker.run_once() == 1
        assert (await queue.get_job(job_id)).available_at == clock.now() + timedelta(seconds=4)

        clock.advance(seconds=3)
        assert await worker.run_once() == 0
        clock.advance(seconds=1)
        assert await worker.run_once() == 1

        job = await queue.get_job(job_id)
        assert job.state == JobState.DEAD_LETTERED
        assert job.attempts_made == 3
        assert job.dead_letter_reason == ReasonCode.MAX_ATTEMPTS_EXCEEDED
        assert job.last_error == "transient failure"

        clock.advance(hours=1)
        assert await worker.run_once() == 0
        assert len(handler.calls) == 3
        assert [j.job_id for j in await queue.list_dead_letters()] == [job_id]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, dispatcher, queue, clock) -> None:
        handler = RecordingHandler(failures=1)
        worker = JobWorker(queue, {JobType.EMBEDDING: handler}, clock=clock)
        job_id = await dispatcher.enqueue_embedding("k1", "u1")

        await worker.run_once()
        clock.advance(seconds=2)
        await worker.run_once()

        job = await queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.attempts_made == 1
        assert [j.attempts_made for j in handler.calls] == [0, 1]

    @pytest.mark.asyncio
    async def test_missing_handler_dead_letters(self, dispatcher, queue, clock) -> None:
        worker = JobWorker(queue, {}, clock=clock)
        job_id = await dispatcher.enqueue_embedding("k1", "u1")

        await worker.run_once()

        job = await queue.get_job(job_id)
        assert job.state == JobState.DEAD_LETTERED
        assert job.dead_letter_reason == ReasonCode.NO_HANDLER

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            BudgetExceeded("daily", ReasonCode.DAILY_LIMIT_EXCEEDED),
            TenantNotFound(user_id="u1"),
        ],
    )
    async def test_non_retryable_errors_dead_letter_at_once(
        self, dispatcher, queue, clock, error
    ) -> None:
        handler = RecordingHandler(failures=10, error=error)
        worker = JobWorker(queue, {JobType.SUMMARY: handler}, clock=clock)
        job_id = await dispatcher.enqueue_summary("k1", "u1")

        await worker.run_once()

        job = await queue.get_job(job_id)
        assert job.state == JobState.DEAD_LETTERED
        assert job.dead_letter_reason == ReasonCode.NON_RETRYABLE
        assert job.attempts_made == 1
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_batch_retry_narrows_to_failed_items(self, dispatcher, queue, clock) -> None:
        seen_items: list[list[dict]] = []

        async def handler(job: AsyncJob) -> JobOutcome:
            seen_items.append(list(job.payload["items"]))
            if len(seen_items) == 1:
                return JobOutcome(failed_items={"k2": "throttled"}, processed=2)
            return JobOutcome(processed=1)

        worker = JobWorker(queue, {JobType.BATCH_SUMMARY: handler}, clock=clock)
        job_id = await dispatcher.enqueue_batch_summary("u1", ["k1", "k2", "k3"])

        await worker.run_once()
        job = await queue.get_job(job_id)
        assert job.state == JobState.QUEUED
        assert job.payload["items"] == [{"id": "k2"}]
        assert job.available_at == clock.now() + timedelta(seconds=5)

        clock.advance(seconds=5)
        await worker.run_once()

        assert (await queue.get_job(job_id)).state == JobState.COMPLETED
        assert seen_items == [[{"id": "k1"}, {"id": "k2"}, {"id": "k3"}], [{"id": "k2"}]]

    @pytest.mark.asyncio
    async def test_run_stops_after(self, dispatcher, queue, clock) -> None:
        handler = RecordingHandler()
        worker = JobWorker(queue, {JobType.EMBEDDING: handler}, clock=clock)
        for entry_id in ("k1", "k2", "k3"):
            await dispatcher.enqueue_embedding(entry_id, "u1")

        assert await worker.run(stop_after=2) == 2
        assert (await queue.get_job_counts()).completed == 2
