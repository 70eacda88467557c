"""Usage audit records and sinks."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from pydantic import BaseModel, Field

from consultai.contracts.enums import UsageAction

USAGE_LOGGER_NAME = "consultai.usage"
EXCERPT_LIMIT = 500


def excerpt(text: str | None, limit: int = EXCERPT_LIMIT) -> str:
    """Truncate text for storage on a usage record."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class UsageRecord(BaseModel):
    """One completed provider or embedding call. Append-only."""

    record_id: str = Field(default_factory=lambda: str(uuid4()))
    request_id: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: str
    user_id: str
    project_id: str | None = None
    knowledge_id: str | None = None
    model: str
    action: UsageAction = UsageAction.GENERATE
    prompt_excerpt: str = ""
    response_excerpt: str = ""
    tokens_used: int = Field(ge=0)
    cost_cents: int = Field(ge=0)
    latency_ms: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class AuditSink(Protocol):
    """Protocol for appending usage records."""

    def record(self, entry: UsageRecord) -> None:
        """Append a usage record."""
        ...


class InMemoryAuditSink:
    """Sink that keeps UsageRecords in a list and supports per-tenant aggregation."""

    def __init__(self) -> None:
        self.entries: list[UsageRecord] = []

    def record(self, entry: UsageRecord) -> None:
        """Append a usage record."""
        self.entries.append(entry)

    def for_tenant(self, tenant_id: str) -> list[UsageRecord]:
        """Records for one tenant, oldest first."""
        return [e for e in self.entries if e.tenant_id == tenant_id]

    def total_cents(self, tenant_id: str | None = None) -> int:
        """Sum cost for all entries, optionally filtered by tenant."""
        if tenant_id is None:
            return sum(e.cost_cents for e in self.entries)
        return sum(e.cost_cents for e in self.entries if e.tenant_id == tenant_id)

    def summary(self, tenant_id: str | None = None) -> dict[str, Any]:
        """Aggregate cost by model and by user. Optional tenant filter."""
        subset = self.entries if tenant_id is None else self.for_tenant(tenant_id)
        by_model: dict[str, int] = {}
        by_user: dict[str, int] = {}
        for e in subset:
            by_model[e.model] = by_model.get(e.model, 0) + e.cost_cents
            by_user[e.user_id] = by_user.get(e.user_id, 0) + e.cost_cents
        return {"by_model": by_model, "by_user": by_user}


class JsonLogAuditSink:
    """Sink that writes one JSON line per record to logger consultai.usage."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(USAGE_LOGGER_NAME)

    def record(self, entry: UsageRecord) -> None:
        """Record entry as a single JSON line to the usage logger."""
        payload = {
            "record_id": entry.record_id,
            "request_id": entry.request_id,
            "occurred_at": entry.occurred_at.isoformat(),
            "tenant_id": entry.tenant_id,
            "user_id": entry.user_id,
            "project_id": entry.project_id,
            "model": entry.model,
            "action": entry.action.value,
            "tokens_used": entry.tokens_used,
            "cost_cents": entry.cost_cents,
            "latency_ms": entry.latency_ms,
            "metadata": entry.metadata,
        }
        self._logger.info(json.dumps(payload))


class FanOutAuditSink:
    """Sink that forwards each record to several sinks in order."""

    def __init__(self, *sinks: AuditSink) -> None:
        self.sinks = sinks

    def record(self, entry: UsageRecord) -> None:
        for sink in self.sinks:
            sink.record(entry)
