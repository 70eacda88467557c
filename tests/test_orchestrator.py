"""Tests for the orchestrator request path."""

import asyncio

import pytest

from consultai.contracts.enums import TaskType, UsageAction
from consultai.contracts.models import TaskDescriptor
from consultai.contracts.reasons import ReasonCode
from consultai.core.catalog import DEFAULT_CATALOG, estimate_tokens
from consultai.core.errors import (
    BudgetExceeded,
    DuplicateRequest,
    InferenceFailed,
    NoEligibleModel,
    TenantNotFound,
)
from consultai.orchestration import Orchestrator
from consultai.providers import MockInferenceProvider

TENANT_ID = "tenant-1"
USER_ID = "user-1"


@pytest.fixture
def inference():
    return MockInferenceProvider(default_response="Mock response")


@pytest.fixture
def orchestrator(config, limiter, inference):
    return Orchestrator(config, limiter, inference)


def _task(task_type: TaskType = TaskType.QUICK_SUMMARY, **kwargs) -> TaskDescriptor:
    kwargs.setdefault("prompt", "Summarize this")
    kwargs.setdefault("user_id", USER_ID)
    return TaskDescriptor(type=task_type, **kwargs)


class TestProcessRequest:
    """Test the select, admit, invoke, settle path."""

    @pytest.mark.asyncio
    async def test_happy_path(self, orchestrator, inference, store, audit_sink) -> None:
        response = await orchestrator.process_request(_task(request_id="req-happy"))

        assert response.content == "Mock response"
        assert response.model == "nova-lite"
        # mock reports max(1, 14 // 4) input and max(1, 13 // 4) output tokens
        assert response.tokens_used == 6
        assert response.cost_cents == 1
        assert response.latency_ms >= 0
        assert response.metadata["provider"] == "mock"
        assert response.metadata["provider_model_id"] == "eu.amazon.nova-lite-v1:0"
        assert response.metadata["tenant_id"] == TENANT_ID
        assert response.metadata["request_id"] == "req-happy"
        assert response.metadata["token_source"] == "provider"
        assert response.metadata["settled"] is True

        ledger = await store.get_budget_state(TENANT_ID)
        assert ledger.monthly_used_cents == 1
        assert ledger.daily_used_cents == 1

        [record] = audit_sink.entries
        assert record.request_id == "req-happy"
        assert record.action == UsageAction.SUMMARIZE
        assert record.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_provider_gets_provider_model_id_and_sampling(self, orchestrator, inference) -> None:
        await orchestrator.process_request(_task(TaskType.RISK_ASSESSMENT, budget_ceiling_cents=300))

        [call] = inference.calls
        profile = DEFAULT_CATALOG.get("claude-3-7-sonnet")
        assert call["model_id"] == profile.provider_model_id
        assert call["sampling"] == profile.sampling
        assert call["prompt"] == "Summarize this"

    @pytest.mark.asyncio
    async def test_explicit_tenant_id(self, orchestrator, store, limits, clock) -> None:
        store.add_tenant("other", limits, now=clock.now())
        response = await orchestrator.process_request(_task(tenant_id="other", user_id="nobody"))
        assert response.metadata["tenant_id"] == "other"
        assert (await store.get_budget_state("other")).monthly_used_cents == 1

    @pytest.mark.asyncio
    async def test_estimated_tokens_when_provider_reports_none(
        self, config, limiter, store
    ) -> None:
        inference = MockInferenceProvider(default_response="x" * 40, report_usage=False)
        orchestrator = Orchestrator(config, limiter, inference)

        response = await orchestrator.process_request(_task(prompt="p" * 80))

        assert response.tokens_used == estimate_tokens("p" * 80 + "x" * 40)
        assert response.metadata["token_source"] == "estimate"

    @pytest.mark.asyncio
    async def test_replayed_request_is_refused(self, orchestrator, inference, store, audit_sink) -> None:
        await orchestrator.process_request(_task(request_id="req-replay"))

        for _ in range(4):
            with pytest.raises(DuplicateRequest):
                await orchestrator.process_request(_task(request_id="req-replay"))

        assert inference.get_call_count() == 1
        assert (await store.get_budget_state(TENANT_ID)).monthly_used_cents == 1
        assert len(audit_sink.entries) == 1

    @pytest.mark.asyncio
    async def test_concurrent_same_request_calls_provider_once(self, orchestrator, inference) -> None:
        results = await asyncio.gather(
            orchestrator.process_request(_task(request_id="req-twin")),
            orchestrator.process_request(_task(request_id="req-twin")),
            return_exceptions=True,
        )

        assert sum(isinstance(r, DuplicateRequest) for r in results) == 1
        assert inference.get_call_count() == 1

    @pytest.mark.asyncio
    async def test_failed_request_id_can_be_retried(self, config, limiter, store) -> None:
        failing = Orchestrator(config, limiter, MockInferenceProvider(fail_with=RuntimeError("down")))
        with pytest.raises(InferenceFailed):
            await failing.process_request(_task(request_id="req-retry"))

        failing.inference = MockInferenceProvider()
        response = await failing.process_request(_task(request_id="req-retry"))

        assert response.metadata["settled"] is True
        assert (await store.get_budget_state(TENANT_ID)).monthly_used_cents == 1


class TestFailures:
    """Test error translation and that failures cost nothing."""

    @pytest.mark.asyncio
    async def test_no_eligible_model(self, orchestrator, inference) -> None:
        with pytest.raises(NoEligibleModel):
            await orchestrator.process_request(_task(budget_ceiling_cents=0))
        assert inference.get_call_count() == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, orchestrator, inference) -> None:
        with pytest.raises(TenantNotFound) as exc_info:
            await orchestrator.process_request(_task(user_id="stranger"))
        assert exc_info.value.user_id == "stranger"
        assert inference.get_call_count() == 0

    @pytest.mark.asyncio
    async def test_unknown_tenant_id(self, orchestrator) -> None:
        with pytest.raises(TenantNotFound) as exc_info:
            await orchestrator.process_request(_task(tenant_id="ghost"))
        assert exc_info.value.tenant_id == "ghost"

    @pytest.mark.asyncio
    async def test_budget_rejection_happens_before_provider_call(
        self, orchestrator, inference, store, limits, clock, audit_sink
    ) -> None:
        store.add_tenant("spent", limits, users=["spender"], now=clock.now(), daily_used_cents=1_000)

        with pytest.raises(BudgetExceeded) as exc_info:
            await orchestrator.process_request(_task(user_id="spender"))

        assert exc_info.value.reason_code == ReasonCode.DAILY_LIMIT_EXCEEDED
        assert exc_info.value.stats.daily_used == 1_000
        assert inference.get_call_count() == 0
        assert audit_sink.entries == []
        assert (await store.get_budget_state("spent")).daily_used_cents == 1_000

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_inference_failed(
        self, config, limiter, store, audit_sink
    ) -> None:
        cause = TimeoutError("read timed out")
        orchestrator = Orchestrator(config, limiter, MockInferenceProvider(fail_with=cause))

        with pytest.raises(InferenceFailed) as exc_info:
            await orchestrator.process_request(_task())

        assert exc_info.value.model_id == "nova-lite"
        assert exc_info.value.__cause__ is cause
        assert audit_sink.entries == []
        assert (await store.get_budget_state(TENANT_ID)).monthly_used_cents == 0


class TestConvenienceOperations:
    """Test the task-building helpers."""

    @pytest.mark.asyncio
    async def test_generate_project_insights(self, orchestrator, audit_sink) -> None:
        response = await orchestrator.generate_project_insights("proj-1", "ctx", USER_ID)
        assert response.model == "nova-pro"
        assert audit_sink.entries[0].project_id == "proj-1"
        assert audit_sink.entries[0].action == UsageAction.ANALYZE

    @pytest.mark.asyncio
    async def test_assess_project_risk_respects_rate_cap(self, orchestrator) -> None:
        capped = await orchestrator.assess_project_risk("proj-1", "data", USER_ID)
        assert capped.model == "nova-lite"

        premium = await orchestrator.assess_project_risk(
            "proj-1", "data", USER_ID, budget_ceiling_cents=300
        )
        assert premium.model == "claude-3-7-sonnet"

    @pytest.mark.asyncio
    async def test_search_knowledge(self, orchestrator, audit_sink) -> None:
        response = await orchestrator.search_knowledge("roadmap", USER_ID)
        assert response.model == "nova-lite"
        assert audit_sink.entries[0].action == UsageAction.EXTRACT

    @pytest.mark.asyncio
    async def test_execute_maps_preferred_model_to_task_type(self, orchestrator) -> None:
        response = await orchestrator.execute(
            "Draft the API reference", USER_ID, preferred_model="mistral-large", budget_ceiling_cents=200
        )
        assert response.model == "mistral-large"

    @pytest.mark.asyncio
    async def test_execute_defaults_to_general(self, orchestrator, audit_sink) -> None:
        response = await orchestrator.execute("hi", USER_ID, request_id="req-exec")
        assert response.model == "nova-lite"
        assert audit_sink.entries[0].request_id == "req-exec"
        assert audit_sink.entries[0].metadata["task_type"] == "general"
