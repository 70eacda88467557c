"""Job worker with bounded retries, exponential backoff and dead-lettering."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta

from consultai.contracts.enums import JobState, JobType
from consultai.contracts.reasons import ReasonCode
from consultai.core.clock import Clock, SystemClock
from consultai.core.errors import BudgetExceeded, DuplicateRequest, JobExhausted, TenantNotFound
from consultai.jobs.models import AsyncJob, JobOutcome
from consultai.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

# Handler type: async function taking the claimed job. Batch handlers return a
# JobOutcome listing failed items; anything else counts as full success.
Handler = Callable[[AsyncJob], Awaitable[JobOutcome | None]]

NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    BudgetExceeded,
    DuplicateRequest,
    TenantNotFound,
)


class JobWorker:
    """Claims available jobs and runs their handlers.

    A failed attempt is never retried immediately: the job goes back to the
    queue with ``available_at = now + backoff.delay_before_retry(attempts)``.
    Once ``max_attempts`` is reached it is dead-lettered and not touched again.
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: Mapping[JobType, Handler],
        clock: Clock | None = None,
        consumer_name: str = "worker-1",
    ) -> None:
        """Initialize worker.

        Args:
            queue: Job queue to claim from
            handlers: Handler per job type
            clock: Time source for claims and retry scheduling
            consumer_name: Name used in log lines
        """
        self.queue = queue
        self.handlers = dict(handlers)
        self.clock = clock or SystemClock()
        self.consumer_name = consumer_name
        self._stop_requested = False

    def stop(self) -> None:
        """Request worker to stop after current iteration."""
        self._stop_requested = True

    async def run_once(self, limit: int = 10) -> int:
        """Claim and process up to ``limit`` available jobs. Returns the count processed."""
        jobs = await self.queue.claim(self.clock.now(), limit=limit)
        for job in jobs:
            await self.process(job)
        return len(jobs)

    async def run(self, stop_after: int | None = None, poll_interval: float = 1.0) -> int:
        """Run worker loop.

        Args:
            stop_after: Stop after processing N jobs (for testing)
            poll_interval: Seconds to sleep when nothing is available

        Returns:
            Number of jobs processed
        """
        processed_count = 0
        self._stop_requested = False

        while not self._stop_requested:
            if stop_after is not None and processed_count >= stop_after:
                break
            limit = 10 if stop_after is None else max(1, stop_after - processed_count)
            processed = await self.run_once(limit=limit)
            processed_count += processed
            if processed == 0:
                await asyncio.sleep(poll_interval)

        return processed_count

    async def process(self, job: AsyncJob) -> JobState:
        """Run one claimed job and record its outcome. Returns the resulting state."""
        handler = self.handlers.get(job.job_type)
        if handler is None:
            logger.warning(f"No handler for job type: {job.job_type.value}")
            await self.queue.dead_letter(
                job, f"No handler for job type {job.job_type.value}", ReasonCode.NO_HANDLER
            )
            return JobState.DEAD_LETTERED

        try:
            outcome = await handler(job)
        except NON_RETRYABLE_ERRORS as e:
            attempted = job.model_copy(update={"attempts_made": job.attempts_made + 1})
            logger.error(f"Job {job.job_id} failed with non-retryable error, moving to DLQ: {e}")
            await self.queue.dead_letter(attempted, str(e), ReasonCode.NON_RETRYABLE)
            return JobState.DEAD_LETTERED
        except Exception as e:
            return await self._fail(job, str(e))

        if outcome is not None and outcome.failed_items:
            return await self._fail_items(job, outcome)

        await self.queue.complete(job)
        logger.debug(f"Successfully processed job: {job.job_id}")
        return JobState.COMPLETED

    async def _fail_items(self, job: AsyncJob, outcome: JobOutcome) -> JobState:
        items = job.payload.get("items") or [{"id": item_id} for item_id in outcome.failed_items]
        remaining = [item for item in items if str(item.get("id")) in outcome.failed_items]
        narrowed = job.model_copy(update={"payload": {**job.payload, "items": remaining}})
        errors = "; ".join(f"{k}: {v}" for k, v in outcome.failed_items.items())
        logger.warning(
            f"Job {job.job_id}: {len(outcome.failed_items)} item(s) failed, "
            f"{outcome.processed} succeeded"
        )
        return await self._fail(narrowed, errors)

    async def _fail(self, job: AsyncJob, error_msg: str) -> JobState:
        current_attempt = job.attempts_made + 1
        attempted = job.model_copy(
            update={"attempts_made": current_attempt, "last_error": error_msg}
        )

        if current_attempt >= job.max_attempts:
            exhausted = JobExhausted(job.job_id, current_attempt, error_msg)
            logger.error(f"Max attempts ({job.max_attempts}) exceeded, moving to DLQ: {exhausted}")
            await self.queue.dead_letter(attempted, error_msg, ReasonCode.MAX_ATTEMPTS_EXCEEDED)
            return JobState.DEAD_LETTERED

        delay = job.backoff.delay_before_retry(current_attempt)
        logger.warning(
            f"Job {job.job_id} failed (attempt {current_attempt}/{job.max_attempts}), "
            f"retrying in {delay:.2f}s: {error_msg}"
        )
        await self.queue.retry(attempted, self.clock.now() + timedelta(seconds=delay))
        return JobState.QUEUED
