"""Job queue protocol and in-memory implementation."""

import asyncio
import logging
from datetime import datetime
from typing import Protocol

from consultai.contracts.enums import JobState
from consultai.contracts.reasons import ReasonCode
from consultai.jobs.models import AsyncJob, JobCounts

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    """Durable job storage with exclusive claims.

    Invariants:
    - A job is claimed by at most one worker at a time
    - Only jobs whose ``available_at`` has passed can be claimed
    - Dead-lettered jobs are never claimed again
    """

    async def enqueue(self, job: AsyncJob) -> AsyncJob:
        """Persist a new job. A live job with the same dedupe key is returned instead."""
        ...

    async def claim(self, now: datetime, limit: int = 1) -> list[AsyncJob]:
        """Atomically move up to ``limit`` available jobs to active."""
        ...

    async def complete(self, job: AsyncJob) -> None:
        ...

    async def retry(self, job: AsyncJob, available_at: datetime) -> None:
        """Put an active job back in the waiting set until ``available_at``."""
        ...

    async def dead_letter(self, job: AsyncJob, error: str, reason: ReasonCode) -> None:
        """Move an active job to the terminal dead-letter state."""
        ...

    async def get_job(self, job_id: str) -> AsyncJob | None:
        ...

    async def get_job_counts(self) -> JobCounts:
        ...

    async def list_dead_letters(self, limit: int = 100) -> list[AsyncJob]:
        """Dead-lettered jobs, most recent first."""
        ...


class InMemoryJobQueue:
    """Job queue kept in process memory, guarded by one asyncio.Lock."""

    def __init__(self) -> None:
        self._jobs: dict[str, AsyncJob] = {}
        self._dedupe: dict[str, str] = {}
        self._dead_letters: list[str] = []
        self._seq = 0
        self._lock = asyncio.Lock()

    async def enqueue(self, job: AsyncJob) -> AsyncJob:
        async with self._lock:
            if job.dedupe_key is not None:
                existing_id = self._dedupe.get(job.dedupe_key)
                existing = self._jobs.get(existing_id) if existing_id else None
                if existing is not None and not existing.is_terminal:
                    logger.debug(f"Dedupe hit for {job.dedupe_key}, returning job {existing.job_id}")
                    return existing
                self._dedupe[job.dedupe_key] = job.job_id
            self._seq += 1
            stored = job.model_copy(update={"seq": self._seq, "state": JobState.QUEUED})
            self._jobs[stored.job_id] = stored
            return stored

    async def claim(self, now: datetime, limit: int = 1) -> list[AsyncJob]:
        async with self._lock:
            ready = [
                j for j in self._jobs.values()
                if j.state == JobState.QUEUED and j.available_at <= now
            ]
            ready.sort(key=AsyncJob.claim_order)
            claimed = []
            for job in ready[:limit]:
                active = job.model_copy(update={"state": JobState.ACTIVE})
                self._jobs[job.job_id] = active
                claimed.append(active)
            return claimed

    async def complete(self, job: AsyncJob) -> None:
        async with self._lock:
            self._jobs[job.job_id] = job.model_copy(update={"state": JobState.COMPLETED})

    async def retry(self, job: AsyncJob, available_at: datetime) -> None:
        async with self._lock:
            self._jobs[job.job_id] = job.model_copy(
                update={"state": JobState.QUEUED, "available_at": available_at}
            )

    async def dead_letter(self, job: AsyncJob, error: str, reason: ReasonCode) -> None:
        async with self._lock:
            self._jobs[job.job_id] = job.model_copy(
                update={
                    "state": JobState.DEAD_LETTERED,
                    "last_error": error,
                    "dead_letter_reason": reason,
                }
            )
            self._dead_letters.append(job.job_id)

    async def get_job(self, job_id: str) -> AsyncJob | None:
        return self._jobs.get(job_id)

    async def get_job_counts(self) -> JobCounts:
        counts = JobCounts()
        for job in self._jobs.values():
            if job.state == JobState.QUEUED:
                counts.waiting += 1
            elif job.state == JobState.ACTIVE:
                counts.active += 1
            elif job.state == JobState.COMPLETED:
                counts.completed += 1
            else:
                counts.failed += 1
        return counts

    async def list_dead_letters(self, limit: int = 100) -> list[AsyncJob]:
        return [self._jobs[job_id] for job_id in reversed(self._dead_letters)][:limit]
