"""Core models: catalog, selection, budgets, settlement."""

from consultai.core.alerts import AlertEmitter, BudgetAlert, LoggingAlertObserver, evaluate_alerts
from consultai.core.budget import (
    BudgetLedger,
    apply_window_resets,
    budget_guard,
    evaluate_admission,
    usage_stats,
)
from consultai.core.catalog import (
    DEFAULT_CATALOG,
    ModelCatalog,
    ModelProfile,
    SamplingParams,
    cost_for_tokens,
    estimate_tokens,
)
from consultai.core.clock import Clock, FrozenClock, SystemClock
from consultai.core.config import CoreConfig, TierLimits
from consultai.core.errors import (
    BudgetExceeded,
    ConsultAIError,
    EmbeddingFailed,
    InferenceFailed,
    JobExhausted,
    NoEligibleModel,
    TenantNotFound,
)
from consultai.core.ledger import (
    AuditSink,
    InMemoryAuditSink,
    JsonLogAuditSink,
    UsageRecord,
)
from consultai.core.limiter import Settlement, UsageLimiter
from consultai.core.selector import ModelSelector
from consultai.core.tenants import InMemoryTenantStore, TenantStore

__all__ = [
    "AlertEmitter",
    "apply_window_resets",
    "AuditSink",
    "BudgetAlert",
    "BudgetExceeded",
    "budget_guard",
    "BudgetLedger",
    "Clock",
    "ConsultAIError",
    "CoreConfig",
    "cost_for_tokens",
    "DEFAULT_CATALOG",
    "EmbeddingFailed",
    "estimate_tokens",
    "evaluate_admission",
    "evaluate_alerts",
    "FrozenClock",
    "InferenceFailed",
    "InMemoryAuditSink",
    "InMemoryTenantStore",
    "JobExhausted",
    "JsonLogAuditSink",
    "LoggingAlertObserver",
    "ModelCatalog",
    "ModelProfile",
    "ModelSelector",
    "NoEligibleModel",
    "SamplingParams",
    "Settlement",
    "SystemClock",
    "TenantNotFound",
    "TenantStore",
    "TierLimits",
    "UsageLimiter",
    "UsageRecord",
    "usage_stats",
]
