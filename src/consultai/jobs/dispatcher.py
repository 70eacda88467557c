"""Job dispatcher: the request-path API for enqueueing background work."""

import logging
from datetime import timedelta
from typing import Any

from consultai.contracts.enums import JobState, JobType
from consultai.core.clock import Clock, SystemClock
from consultai.core.errors import JobExhausted
from consultai.jobs.constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    BATCH_BACKOFF_BASE_SECONDS,
    DEFAULT_ATTEMPTS,
    QUEUE_NAME,
)
from consultai.jobs.models import AsyncJob, BackoffPolicy, JobCounts
from consultai.jobs.queue import JobQueue
from consultai.settings import Settings

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Enqueues jobs with per-type retry defaults.

    ``enqueue`` returns as soon as the job is persisted; execution is the
    worker's business.
    """

    def __init__(
        self,
        queue: JobQueue,
        clock: Clock | None = None,
        backoff_base_seconds: float = BACKOFF_BASE_SECONDS,
        batch_backoff_base_seconds: float = BATCH_BACKOFF_BASE_SECONDS,
        backoff_max_seconds: float = BACKOFF_MAX_SECONDS,
        queue_name: str = QUEUE_NAME,
    ) -> None:
        self.queue = queue
        self.clock = clock or SystemClock()
        self.queue_name = queue_name
        self._backoff = {
            JobType.EMBEDDING: BackoffPolicy(
                base_seconds=backoff_base_seconds, max_seconds=backoff_max_seconds
            ),
            JobType.SUMMARY: BackoffPolicy(
                base_seconds=backoff_base_seconds, max_seconds=backoff_max_seconds
            ),
            JobType.BATCH_SUMMARY: BackoffPolicy(
                base_seconds=batch_backoff_base_seconds, max_seconds=backoff_max_seconds
            ),
        }

    @classmethod
    def from_settings(
        cls, queue: JobQueue, settings: Settings, clock: Clock | None = None
    ) -> "JobDispatcher":
        return cls(
            queue,
            clock=clock,
            backoff_base_seconds=settings.job_backoff_base_seconds,
            batch_backoff_base_seconds=settings.job_batch_backoff_base_seconds,
            backoff_max_seconds=settings.job_backoff_max_seconds,
        )

    def default_backoff(self, job_type: JobType) -> BackoffPolicy:
        return self._backoff[job_type]

    async def enqueue(
        self,
        job_type: JobType,
        payload: dict[str, Any],
        *,
        attempts: int | None = None,
        backoff: BackoffPolicy | None = None,
        priority: int = 0,
        delay_seconds: float = 0,
        dedupe_key: str | None = None,
    ) -> str:
        """Persist a job and return its id.

        Args:
            job_type: Kind of job
            payload: Handler input
            attempts: Max attempts (defaults: 3 single, 2 batch)
            backoff: Retry backoff (defaults: 2s single, 5s batch)
            priority: Lower runs first
            delay_seconds: Do not run before now + delay
            dedupe_key: Reuse a live job with the same key instead of adding one
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        now = self.clock.now()
        job = AsyncJob(
            job_type=job_type,
            payload=payload,
            max_attempts=attempts if attempts is not None else DEFAULT_ATTEMPTS[job_type],
            backoff=backoff or self.default_backoff(job_type),
            priority=priority,
            enqueued_at=now,
            available_at=now + timedelta(seconds=delay_seconds),
            dedupe_key=dedupe_key,
        )
        stored = await self.queue.enqueue(job)
        logger.info(f"Enqueued {job_type.value} job {stored.job_id}")
        return stored.job_id

    async def enqueue_embedding(
        self, entry_id: str, user_id: str, tenant_id: str | None = None, priority: int = 0
    ) -> str:
        """Enqueue (re)embedding of a knowledge entry."""
        return await self.enqueue(
            JobType.EMBEDDING,
            {"entry_id": entry_id, "user_id": user_id, "tenant_id": tenant_id},
            priority=priority,
        )

    async def enqueue_summary(
        self, entry_id: str, user_id: str, tenant_id: str | None = None, priority: int = 0
    ) -> str:
        """Enqueue summary generation for one knowledge entry."""
        return await self.enqueue(
            JobType.SUMMARY,
            {"entry_id": entry_id, "user_id": user_id, "tenant_id": tenant_id},
            priority=priority,
        )

    async def enqueue_batch_summary(
        self,
        user_id: str,
        entry_ids: list[str] | None = None,
        tenant_id: str | None = None,
        priority: int = 0,
    ) -> str:
        """Enqueue summaries for several entries.

        Without ``entry_ids`` the worker picks the user's unsummarized entries.
        """
        payload: dict[str, Any] = {"user_id": user_id, "tenant_id": tenant_id}
        if entry_ids is not None:
            payload["items"] = [{"id": entry_id} for entry_id in entry_ids]
        return await self.enqueue(JobType.BATCH_SUMMARY, payload, priority=priority)

    async def get_job_counts(self) -> JobCounts:
        return await self.queue.get_job_counts()

    async def get_queue_status(self) -> dict[str, Any]:
        counts = await self.get_job_counts()
        return {"name": self.queue_name, "job_counts": counts.model_dump()}

    async def check_job(self, job_id: str) -> AsyncJob:
        """Return a job's current state.

        Raises:
            KeyError: If the job is unknown
            JobExhausted: If the job was dead-lettered
        """
        job = await self.queue.get_job(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        if job.state == JobState.DEAD_LETTERED:
            raise JobExhausted(job.job_id, job.attempts_made, job.last_error)
        return job

    async def resubmit(self, job_id: str) -> str:
        """Enqueue a fresh copy of a dead-lettered job. Operator action."""
        job = await self.queue.get_job(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        if job.state != JobState.DEAD_LETTERED:
            raise ValueError(f"Job {job_id} is not dead-lettered (state={job.state.value})")
        new_id = await self.enqueue(
            job.job_type,
            dict(job.payload),
            attempts=job.max_attempts,
            backoff=job.backoff,
            priority=job.priority,
        )
        logger.info(f"Resubmitted dead-lettered job {job_id} as {new_id}")
        return new_id
