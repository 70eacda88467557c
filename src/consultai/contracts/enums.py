"""Canonical enum definitions shared across the core."""

from enum import Enum


class TaskType(str, Enum):
    """Kinds of AI task the orchestrator routes."""

    QUICK_SUMMARY = "quick_summary"
    PROJECT_ANALYSIS = "project_analysis"
    RISK_ASSESSMENT = "risk_assessment"
    TECHNICAL_DOCS = "technical_docs"
    REALTIME_ASSIST = "realtime_assist"
    KNOWLEDGE_SEARCH = "knowledge_search"
    REPORT_GENERATION = "report_generation"
    GENERAL = "general"


class Urgency(str, Enum):
    """Execution urgency of a task."""

    REALTIME = "realtime"
    BATCH = "batch"


class AccuracyLevel(str, Enum):
    """Accuracy requirement of a task."""

    STANDARD = "standard"
    CRITICAL = "critical"


class Tier(str, Enum):
    """Subscription tiers with increasing budget ceilings."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class UsageAction(str, Enum):
    """Action recorded on a usage record."""

    GENERATE = "generate"
    SUMMARIZE = "summarize"
    EXTRACT = "extract"
    TRANSLATE = "translate"
    ANALYZE = "analyze"
    EMBED = "embed"


class AlertLevel(str, Enum):
    """Severity of a budget alert."""

    WARNING = "warning"
    CRITICAL = "critical"


class AlertScope(str, Enum):
    """Budget window an alert refers to."""

    MONTHLY = "monthly"
    DAILY = "daily"


class EmbeddingSource(str, Enum):
    """Provenance of a stored embedding vector."""

    PROVIDER = "provider"
    FALLBACK = "fallback"


class JobType(str, Enum):
    """Asynchronous job kinds."""

    EMBEDDING = "embedding"
    SUMMARY = "summary"
    BATCH_SUMMARY = "batch_summary"


class JobState(str, Enum):
    """Lifecycle state of an asynchronous job."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEAD_LETTERED = "dead_lettered"
