"""Error taxonomy for the AI core."""

from consultai.contracts.models import UsageStats
from consultai.contracts.reasons import ReasonCode


class ConsultAIError(Exception):
    """Base class for all core errors."""


class NoEligibleModel(ConsultAIError, ValueError):
    """No catalog model satisfies the task's context and cost constraints."""

    def __init__(self, task_type: str, context_length: int, budget_ceiling_cents: int) -> None:
        super().__init__(
            f"No suitable model for task {task_type}: "
            f"context_length={context_length}, budget_ceiling={budget_ceiling_cents}c/1M"
        )
        self.task_type = task_type
        self.context_length = context_length
        self.budget_ceiling_cents = budget_ceiling_cents


class TenantNotFound(ConsultAIError):
    """Tenant (or the user's tenant) does not exist."""

    def __init__(self, tenant_id: str | None = None, user_id: str | None = None) -> None:
        if tenant_id is not None:
            message = f"Tenant not found: {tenant_id}"
        else:
            message = f"Tenant not found for user: {user_id}"
        super().__init__(message)
        self.tenant_id = tenant_id
        self.user_id = user_id


class BudgetExceeded(ConsultAIError):
    """Admission rejected because a budget limit would be exceeded."""

    def __init__(
        self,
        reason: str,
        reason_code: ReasonCode | None = None,
        stats: UsageStats | None = None,
    ) -> None:
        super().__init__(f"Budget limit exceeded: {reason}")
        self.reason = reason
        self.reason_code = reason_code
        self.stats = stats


class DuplicateRequest(ConsultAIError):
    """Request id was already settled or is still in flight."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request already processed: {request_id}")
        self.request_id = request_id


class InferenceFailed(ConsultAIError):
    """Provider call failed; no usage was settled."""

    def __init__(self, model_id: str, message: str) -> None:
        super().__init__(f"AI model invocation failed ({model_id}): {message}")
        self.model_id = model_id


class EmbeddingFailed(ConsultAIError):
    """Embedding provider failed; callers degrade to a fallback vector."""

    def __init__(self, message: str, reason_code: ReasonCode) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class JobExhausted(ConsultAIError):
    """Job was dead-lettered after exhausting its attempts."""

    def __init__(self, job_id: str, attempts: int, last_error: str | None) -> None:
        super().__init__(f"Job {job_id} dead-lettered after {attempts} attempts: {last_error}")
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
