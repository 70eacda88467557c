"""Stable reason codes for admission decisions and job outcomes."""

from enum import Enum


class ReasonCode(str, Enum):
    """Stable, machine-readable reason codes."""

    # Admission reason codes
    MONTHLY_BUDGET_EXCEEDED = "monthly_budget_exceeded"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"
    TENANT_NOT_FOUND = "tenant_not_found"

    # Embedding reason codes
    EMBEDDING_EMPTY_INPUT = "embedding_empty_input"
    EMBEDDING_PROVIDER_ERROR = "embedding_provider_error"
    EMBEDDING_DIMENSION_MISMATCH = "embedding_dimension_mismatch"

    # Job reason codes
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
    NON_RETRYABLE = "non_retryable"
    NO_HANDLER = "no_handler"
