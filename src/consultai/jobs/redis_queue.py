"""Redis-backed job queue."""

import json
import logging
from datetime import datetime

from redis.asyncio import Redis

from consultai.contracts.enums import JobState
from consultai.contracts.reasons import ReasonCode
from consultai.jobs.constants import (
    DEDUPE_TTL_SECONDS,
    KEY_ACTIVE,
    KEY_COMPLETED,
    KEY_PREFIX,
    KEY_SEQ,
    KEY_WAITING,
    STREAM_DLQ,
)
from consultai.jobs.models import AsyncJob, JobCounts

logger = logging.getLogger(__name__)

# Removes a waiting job only if its score (available_at) is due.
_CLAIM_SCRIPT = """
local score = redis.call("ZSCORE", KEYS[1], ARGV[1])
if score and tonumber(score) <= tonumber(ARGV[2]) then
    return redis.call("ZREM", KEYS[1], ARGV[1])
end
return 0
"""


def _decode(value: str | bytes | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode()
    return value


def job_key(job_id: str) -> str:
    """Redis key holding a job body: "consultai:jobs:job:{job_id}"."""
    return f"{KEY_PREFIX}:job:{job_id}"


def dedupe_key(key: str) -> str:
    return f"{KEY_PREFIX}:dedupe:{key}"


class RedisJobQueue:
    """Job queue on Redis.

    Layout:
    - job bodies as JSON strings under ``job_key(job_id)``
    - waiting jobs in a sorted set scored by ``available_at``
    - active job ids in a set
    - a completed counter
    - dead letters appended to a stream with XADD

    A claim is won by whichever worker removes the id from the waiting set,
    so at most one worker holds a job. The removal runs as a script that
    checks the score first, so a job re-queued for later cannot be taken
    early.
    """

    def __init__(self, redis: Redis) -> None:
        """Initialize queue.

        Args:
            redis: Redis async client
        """
        self.redis = redis
        self._claim_script = redis.register_script(_CLAIM_SCRIPT)

    async def _load(self, job_id: str) -> AsyncJob | None:
        raw = _decode(await self.redis.get(job_key(job_id)))
        if raw is None:
            return None
        return AsyncJob.model_validate_json(raw)

    async def _save(self, job: AsyncJob) -> None:
        await self.redis.set(job_key(job.job_id), job.model_dump_json())

    async def enqueue(self, job: AsyncJob) -> AsyncJob:
        if job.dedupe_key is not None:
            won = await self.redis.set(
                dedupe_key(job.dedupe_key), job.job_id, nx=True, ex=DEDUPE_TTL_SECONDS
            )
            if not won:
                existing_id = _decode(await self.redis.get(dedupe_key(job.dedupe_key)))
                existing = await self._load(existing_id) if existing_id else None
                if existing is not None and not existing.is_terminal:
                    logger.debug(f"Dedupe hit for {job.dedupe_key}, returning job {existing.job_id}")
                    return existing
                await self.redis.set(dedupe_key(job.dedupe_key), job.job_id, ex=DEDUPE_TTL_SECONDS)

        seq = await self.redis.incr(KEY_SEQ)
        stored = job.model_copy(update={"seq": int(seq), "state": JobState.QUEUED})
        await self._save(stored)
        await self.redis.zadd(KEY_WAITING, {stored.job_id: stored.available_at.timestamp()})
        return stored

    async def claim(self, now: datetime, limit: int = 1) -> list[AsyncJob]:
        ready_ids = await self.redis.zrangebyscore(KEY_WAITING, "-inf", now.timestamp())
        if not ready_ids:
            return []

        candidates = []
        for raw_id in ready_ids:
            job = await self._load(_decode(raw_id))
            if job is not None:
                candidates.append(job)
        candidates.sort(key=AsyncJob.claim_order)

        claimed = []
        for job in candidates:
            if len(claimed) >= limit:
                break
            active = await self._take(job.job_id, now)
            if active is not None:
                claimed.append(active)
        return claimed

    async def _take(self, job_id: str, now: datetime) -> AsyncJob | None:
        """Claim one job if it is still waiting and due at ``now``.

        The body is re-read after the claim is won; the candidate snapshot may
        predate a retry by another worker.
        """
        removed = await self._claim_script(keys=[KEY_WAITING], args=[job_id, now.timestamp()])
        if not removed:
            return None
        job = await self._load(job_id)
        if job is None:
            logger.warning(f"Claimed job {job_id} has no body, dropping it")
            return None
        active = job.model_copy(update={"state": JobState.ACTIVE})
        await self._save(active)
        await self.redis.sadd(KEY_ACTIVE, job_id)
        return active

    async def complete(self, job: AsyncJob) -> None:
        await self._save(job.model_copy(update={"state": JobState.COMPLETED}))
        await self.redis.srem(KEY_ACTIVE, job.job_id)
        await self.redis.incr(KEY_COMPLETED)

    async def retry(self, job: AsyncJob, available_at: datetime) -> None:
        queued = job.model_copy(update={"state": JobState.QUEUED, "available_at": available_at})
        await self._save(queued)
        await self.redis.srem(KEY_ACTIVE, job.job_id)
        await self.redis.zadd(KEY_WAITING, {job.job_id: available_at.timestamp()})

    async def dead_letter(self, job: AsyncJob, error: str, reason: ReasonCode) -> None:
        dead = job.model_copy(
            update={
                "state": JobState.DEAD_LETTERED,
                "last_error": error,
                "dead_letter_reason": reason,
            }
        )
        await self._save(dead)
        await self.redis.srem(KEY_ACTIVE, job.job_id)
        await self.redis.xadd(
            STREAM_DLQ,
            {
                "job_id": job.job_id,
                "job_type": job.job_type.value,
                "attempts": str(dead.attempts_made),
                "payload": json.dumps(job.payload),
                "error": error,
                "dlq_reason": reason.value,
            },
        )

    async def get_job(self, job_id: str) -> AsyncJob | None:
        return await self._load(job_id)

    async def get_job_counts(self) -> JobCounts:
        completed = _decode(await self.redis.get(KEY_COMPLETED))
        return JobCounts(
            waiting=await self.redis.zcard(KEY_WAITING),
            active=await self.redis.scard(KEY_ACTIVE),
            completed=int(completed or 0),
            failed=await self.redis.xlen(STREAM_DLQ),
        )

    async def list_dead_letters(self, limit: int = 100) -> list[AsyncJob]:
        entries = await self.redis.xrevrange(STREAM_DLQ, count=limit)
        jobs = []
        for _message_id, fields in entries:
            data = {_decode(k): _decode(v) for k, v in fields.items()}
            job = await self._load(data["job_id"])
            if job is not None:
                jobs.append(job)
        return jobs
