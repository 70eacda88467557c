"""Job, backoff and outcome models."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from consultai.contracts.enums import JobState, JobType
from consultai.contracts.reasons import ReasonCode
from consultai.jobs.constants import BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS

# 2**64 * any sane base is far beyond any cap
_MAX_EXPONENT = 64


class BackoffPolicy(BaseModel):
    """Exponential backoff: the k-th retry waits ``base * 2**(k-1)``, capped."""

    base_seconds: float = Field(default=BACKOFF_BASE_SECONDS, gt=0)
    max_seconds: float = Field(default=BACKOFF_MAX_SECONDS, gt=0)

    model_config = {"extra": "forbid", "frozen": True}

    def delay_before_retry(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (1-based).

        Raises:
            ValueError: If retry < 1
        """
        if retry < 1:
            raise ValueError("retry must be >= 1")
        exponent = min(retry - 1, _MAX_EXPONENT)
        return min(self.base_seconds * (2**exponent), self.max_seconds)


class AsyncJob(BaseModel):
    """A unit of background work with bounded retries."""

    job_id: str = Field(default_factory=lambda: str(uuid4()))
    job_type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts_made: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    priority: int = 0
    state: JobState = JobState.QUEUED
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    available_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    seq: int = 0
    last_error: str | None = None
    dead_letter_reason: ReasonCode | None = None
    dedupe_key: str | None = None

    model_config = {"extra": "forbid"}

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.DEAD_LETTERED)

    def claim_order(self) -> tuple[int, datetime, int]:
        """Sort key for claiming: priority, then availability, then enqueue order."""
        return (self.priority, self.available_at, self.seq)


class JobCounts(BaseModel):
    """Number of jobs per state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    model_config = {"extra": "forbid"}


class JobOutcome(BaseModel):
    """Handler result. Batch handlers report per-item failures here."""

    failed_items: dict[str, str] = Field(default_factory=dict)
    processed: int = 0

    model_config = {"extra": "forbid"}

    @property
    def ok(self) -> bool:
        return not self.failed_items
