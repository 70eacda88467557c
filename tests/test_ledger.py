"""Tests for usage records and audit sinks."""

import json
import logging

from consultai.contracts.enums import UsageAction
from consultai.core.ledger import (
    USAGE_LOGGER_NAME,
    FanOutAuditSink,
    InMemoryAuditSink,
    JsonLogAuditSink,
    UsageRecord,
    excerpt,
)


def _record(
    tenant_id: str = "t1",
    user_id: str = "u1",
    model: str = "nova-lite",
    cost: int = 5,
    **kwargs,
) -> UsageRecord:
    return UsageRecord(
        request_id=kwargs.pop("request_id", f"req-{tenant_id}-{user_id}-{model}-{cost}"),
        tenant_id=tenant_id,
        user_id=user_id,
        model=model,
        tokens_used=100,
        cost_cents=cost,
        **kwargs,
    )


class TestExcerpt:
    """Test excerpt truncation."""

    def test_short_text_unchanged(self) -> None:
        assert excerpt("hello") == "hello"

    def test_long_text_truncated(self) -> None:
        assert excerpt("abcdef", limit=3) == "abc..."

    def test_empty(self) -> None:
        assert excerpt(None) == ""
        assert excerpt("") == ""


class TestInMemoryAuditSink:
    """Test the in-memory audit sink and its aggregations."""

    def test_total_and_per_tenant(self) -> None:
        sink = InMemoryAuditSink()
        sink.record(_record("t1", cost=5))
        sink.record(_record("t1", cost=7, model="nova-pro"))
        sink.record(_record("t2", cost=11))

        assert sink.total_cents() == 23
        assert sink.total_cents("t1") == 12
        assert [r.cost_cents for r in sink.for_tenant("t1")] == [5, 7]

    def test_summary_by_model_and_user(self) -> None:
        sink = InMemoryAuditSink()
        sink.record(_record("t1", user_id="alice", model="nova-lite", cost=2))
        sink.record(_record("t1", user_id="bob", model="nova-lite", cost=3))
        sink.record(_record("t1", user_id="alice", model="nova-pro", cost=10))
        sink.record(_record("t2", user_id="carol", model="nova-pro", cost=100))

        summary = sink.summary("t1")
        assert summary["by_model"] == {"nova-lite": 5, "nova-pro": 10}
        assert summary["by_user"] == {"alice": 12, "bob": 3}


class TestJsonLogAuditSink:
    """Test the JSON-line usage logger."""

    def test_writes_one_json_line(self, caplog) -> None:
        caplog.set_level(logging.INFO, logger=USAGE_LOGGER_NAME)
        JsonLogAuditSink().record(
            _record(request_id="req-json", action=UsageAction.SUMMARIZE, metadata={"k": "v"})
        )

        records = [r for r in caplog.records if r.name == USAGE_LOGGER_NAME]
        assert len(records) == 1
        payload = json.loads(records[0].message)
        assert payload["request_id"] == "req-json"
        assert payload["action"] == "summarize"
        assert payload["cost_cents"] == 5
        assert payload["metadata"] == {"k": "v"}


class TestFanOutAuditSink:
    """Test forwarding to several sinks."""

    def test_forwards_to_all(self) -> None:
        a, b = InMemoryAuditSink(), InMemoryAuditSink()
        sink = FanOutAuditSink(a, b)
        sink.record(_record())
        assert len(a.entries) == len(b.entries) == 1
