"""Constants for the async job queue."""

from consultai.contracts.enums import JobType

# Queue name
QUEUE_NAME = "knowledge-summary"

# Redis keys
KEY_PREFIX = "consultai:jobs"
KEY_WAITING = f"{KEY_PREFIX}:waiting"
KEY_ACTIVE = f"{KEY_PREFIX}:active"
KEY_COMPLETED = f"{KEY_PREFIX}:completed"
KEY_SEQ = f"{KEY_PREFIX}:seq"
STREAM_DLQ = f"{KEY_PREFIX}:dlq"

# Dedupe TTL (1 day in seconds)
DEDUPE_TTL_SECONDS = 86400

# Retry defaults per job type: (max attempts, backoff base seconds)
DEFAULT_ATTEMPTS: dict[JobType, int] = {
    JobType.EMBEDDING: 3,
    JobType.SUMMARY: 3,
    JobType.BATCH_SUMMARY: 2,
}
BACKOFF_BASE_SECONDS = 2.0
BATCH_BACKOFF_BASE_SECONDS = 5.0
BACKOFF_MAX_SECONDS = 300.0

# Batch summary: entries picked up when no explicit items are given
BATCH_SUMMARY_LIMIT = 10
