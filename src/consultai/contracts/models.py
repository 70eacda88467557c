"""Pydantic v2 request/response contracts for the AI core."""

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from consultai.contracts.enums import AccuracyLevel, TaskType, Urgency
from consultai.contracts.reasons import ReasonCode


class BaseContractModel(BaseModel):
    """Base model for all contracts with common fields."""

    model_config = {"extra": "forbid", "frozen": False}


class TaskDescriptor(BaseContractModel):
    """A single AI task request. Transient, never persisted.

    ``budget_ceiling_cents`` caps the per-million-token rate of the selected
    model, not the cost of the call.
    """

    type: TaskType
    prompt: str
    context: str | None = None
    complexity: int = Field(default=5, ge=1, le=10)
    urgency: Urgency = Urgency.BATCH
    accuracy_required: AccuracyLevel = AccuracyLevel.STANDARD
    context_length: int = Field(default=4000, ge=0)
    budget_ceiling_cents: int = Field(default=100, ge=0)
    tenant_id: str | None = None
    user_id: str
    project_id: str | None = None
    knowledge_id: str | None = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        """Validate user_id is not empty."""
        if not v or not v.strip():
            raise ValueError("user_id cannot be empty")
        return v


class AIResponse(BaseContractModel):
    """Response returned to the caller after a completed provider call."""

    content: str
    model: str
    tokens_used: int = Field(ge=0)
    cost_cents: int = Field(ge=0)
    latency_ms: int = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class UsageStats(BaseContractModel):
    """Snapshot of a tenant's spend against its limits."""

    monthly_used: int
    monthly_limit: int
    daily_used: int
    daily_limit: int
    percent_used: float
    daily_percent_used: float
    is_near_limit: bool


class BudgetCheck(BaseContractModel):
    """Outcome of an admission check."""

    allowed: bool
    reason: str | None = None
    reason_code: ReasonCode | None = None
    estimated_cost_cents: int = 0
    stats: UsageStats | None = None
