"""Canonical contracts shared by the core components."""

from consultai.contracts.enums import (
    AccuracyLevel,
    AlertLevel,
    AlertScope,
    EmbeddingSource,
    JobState,
    JobType,
    TaskType,
    Tier,
    Urgency,
    UsageAction,
)
from consultai.contracts.models import AIResponse, BudgetCheck, TaskDescriptor, UsageStats
from consultai.contracts.reasons import ReasonCode

__all__ = [
    "AccuracyLevel",
    "AIResponse",
    "AlertLevel",
    "AlertScope",
    "BudgetCheck",
    "EmbeddingSource",
    "JobState",
    "JobType",
    "ReasonCode",
    "TaskDescriptor",
    "TaskType",
    "Tier",
    "Urgency",
    "UsageAction",
    "UsageStats",
]
