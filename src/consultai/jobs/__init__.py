"""Asynchronous job dispatch with bounded retries."""

from consultai.jobs.dispatcher import JobDispatcher
from consultai.jobs.models import AsyncJob, BackoffPolicy, JobCounts, JobOutcome
from consultai.jobs.queue import InMemoryJobQueue, JobQueue
from consultai.jobs.redis_queue import RedisJobQueue
from consultai.jobs.worker import Handler, JobWorker

__all__ = [
    "AsyncJob",
    "BackoffPolicy",
    "Handler",
    "InMemoryJobQueue",
    "JobCounts",
    "JobDispatcher",
    "JobOutcome",
    "JobQueue",
    "JobWorker",
    "RedisJobQueue",
]
