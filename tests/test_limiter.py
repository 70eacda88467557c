"""Tests for the usage limiter: admission, settlement and limits."""

import asyncio
from datetime import datetime, timezone

import pytest

from consultai.contracts.enums import AlertLevel, AlertScope, Tier, UsageAction
from consultai.contracts.reasons import ReasonCode
from consultai.core.alerts import AlertEmitter
from consultai.core.config import TierLimits
from consultai.core.errors import TenantNotFound
from consultai.core.limiter import UsageLimiter
from consultai.core.tenants import InMemoryTenantStore

TENANT_ID = "tenant-1"
USER_ID = "user-1"

# claude-3-5-haiku costs 100c per 1M tokens: 10_000 tokens == 1 cent
HAIKU = "claude-3-5-haiku"
TOKENS_PER_CENT = 10_000


class TestCheckBudget:
    """Test pre-call admission."""

    @pytest.mark.asyncio
    async def test_monthly_budget_exceeded(self, store, limiter, limits, clock) -> None:
        store.add_tenant("t-month", limits, now=clock.now(), monthly_used_cents=9_900)
        check = await limiter.check_budget("t-month", HAIKU, 200 * TOKENS_PER_CENT)
        assert not check.allowed
        assert check.estimated_cost_cents == 200
        assert check.reason_code == ReasonCode.MONTHLY_BUDGET_EXCEEDED
        assert "Monthly budget exceeded" in check.reason

    @pytest.mark.asyncio
    async def test_daily_limit_boundary(self, store, limiter, limits, clock) -> None:
        store.add_tenant("t-day", limits, now=clock.now(), daily_used_cents=500, monthly_used_cents=500)

        allowed = await limiter.check_budget("t-day", HAIKU, 400 * TOKENS_PER_CENT)
        assert allowed.allowed

        rejected = await limiter.check_budget("t-day", HAIKU, 600 * TOKENS_PER_CENT)
        assert not rejected.allowed
        assert rejected.reason_code == ReasonCode.DAILY_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_prior_month_ledger_is_reset(self, store, limiter, limits) -> None:
        store.add_tenant(
            "t-old",
            limits,
            monthly_used_cents=9_999,
            daily_used_cents=999,
            last_reset_at=datetime(2026, 2, 3, tzinfo=timezone.utc),
            updated_at=datetime(2026, 2, 27, tzinfo=timezone.utc),
        )
        check = await limiter.check_budget("t-old", HAIKU, 100 * TOKENS_PER_CENT)
        assert check.allowed
        assert check.stats.monthly_used == 0
        assert check.stats.daily_used == 0

        ledger = await store.get_budget_state("t-old")
        assert ledger.monthly_used_cents == 0
        assert ledger.last_reset_at == limiter.clock.now()

    @pytest.mark.asyncio
    async def test_day_rollover_resets_daily_only(self, store, limiter, limits, clock) -> None:
        store.add_tenant(
            "t-yesterday",
            limits,
            monthly_used_cents=3_000,
            daily_used_cents=1_000,
            last_reset_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            updated_at=datetime(2026, 3, 14, 22, 0, tzinfo=timezone.utc),
        )
        check = await limiter.check_budget("t-yesterday", HAIKU, TOKENS_PER_CENT)
        assert check.allowed
        assert check.stats.monthly_used == 3_000
        assert check.stats.daily_used == 0

    @pytest.mark.asyncio
    async def test_admission_never_mutates_counters(self, store, limiter) -> None:
        before = await store.get_budget_state(TENANT_ID)
        await limiter.check_budget(TENANT_ID, HAIKU, 50 * TOKENS_PER_CENT)
        await limiter.check_budget(TENANT_ID, HAIKU, 5_000 * TOKENS_PER_CENT)
        after = await store.get_budget_state(TENANT_ID)
        assert after.monthly_used_cents == before.monthly_used_cents == 0
        assert after.daily_used_cents == before.daily_used_cents == 0

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, limiter) -> None:
        check = await limiter.check_budget("ghost", HAIKU, 10)
        assert not check.allowed
        assert check.reason_code == ReasonCode.TENANT_NOT_FOUND


class TestRecordUsage:
    """Test settlement."""

    @pytest.mark.asyncio
    async def test_increments_both_counters_and_appends_record(
        self, store, limiter, audit_sink
    ) -> None:
        settlement = await limiter.record_usage(
            TENANT_ID,
            USER_ID,
            "project-1",
            HAIKU,
            42 * TOKENS_PER_CENT,
            latency_ms=120,
            prompt="p",
            response="r",
            request_id="req-1",
            action=UsageAction.SUMMARIZE,
        )
        assert settlement.applied
        assert settlement.record.cost_cents == 42
        assert settlement.record.action == UsageAction.SUMMARIZE

        ledger = await store.get_budget_state(TENANT_ID)
        assert ledger.monthly_used_cents == 42
        assert ledger.daily_used_cents == 42
        assert [r.request_id for r in audit_sink.entries] == ["req-1"]
        assert (await store.list_usage(TENANT_ID))[0].project_id == "project-1"

    @pytest.mark.asyncio
    async def test_cost_is_ceiling_rounded(self, limiter) -> None:
        settlement = await limiter.record_usage(
            TENANT_ID, USER_ID, None, "claude-3-7-sonnet", 1, latency_ms=1
        )
        assert settlement.record.cost_cents == 1

    @pytest.mark.asyncio
    async def test_replayed_request_id_does_not_double_count(
        self, store, limiter, audit_sink
    ) -> None:
        for _ in range(3):
            await limiter.record_usage(
                TENANT_ID, USER_ID, None, HAIKU, 10 * TOKENS_PER_CENT, 5, request_id="req-dup"
            )

        ledger = await store.get_budget_state(TENANT_ID)
        assert ledger.monthly_used_cents == 10
        assert ledger.daily_used_cents == 10
        assert len(audit_sink.entries) == 1

    @pytest.mark.asyncio
    async def test_replay_reports_not_applied(self, limiter) -> None:
        first = await limiter.record_usage(TENANT_ID, USER_ID, None, HAIKU, 1, 1, request_id="r")
        second = await limiter.record_usage(TENANT_ID, USER_ID, None, HAIKU, 1, 1, request_id="r")
        assert first.applied
        assert not second.applied

    @pytest.mark.asyncio
    async def test_prompt_and_response_are_truncated(self, limiter) -> None:
        settlement = await limiter.record_usage(
            TENANT_ID, USER_ID, None, HAIKU, 1, 1, prompt="x" * 2_000, response="short"
        )
        assert len(settlement.record.prompt_excerpt) == 503
        assert settlement.record.response_excerpt == "short"


class TestConcurrentSettlement:
    """Concurrent settlements for one tenant never lose an update."""

    @pytest.mark.asyncio
    async def test_many_concurrent_settlements_sum_exactly(self, config, clock) -> None:
        store = InMemoryTenantStore()
        big = TierLimits(monthly_cents=10_000_000, daily_cents=10_000_000)
        store.add_tenant("busy", big, now=clock.now())
        limiter = UsageLimiter(store, config, clock=clock)

        costs = [(i % 7) + 1 for i in range(150)]
        await asyncio.gather(
            *(
                limiter.record_usage(
                    "busy", f"user-{i}", None, HAIKU, cost * TOKENS_PER_CENT, 1, request_id=f"req-{i}"
                )
                for i, cost in enumerate(costs)
            )
        )

        ledger = await store.get_budget_state("busy")
        assert ledger.monthly_used_cents == sum(costs)
        assert ledger.daily_used_cents == sum(costs)
        assert len(await store.list_usage("busy", limit=1_000)) == 150

    @pytest.mark.asyncio
    async def test_concurrent_replays_settle_once(self, config, clock) -> None:
        store = InMemoryTenantStore()
        store.add_tenant("busy", TierLimits(monthly_cents=100_000, daily_cents=100_000), now=clock.now())
        limiter = UsageLimiter(store, config, clock=clock)

        results = await asyncio.gather(
            *(
                limiter.record_usage("busy", "u", None, HAIKU, 7 * TOKENS_PER_CENT, 1, request_id="same")
                for _ in range(100)
            )
        )

        assert sum(1 for s in results if s.applied) == 1
        assert (await store.get_budget_state("busy")).monthly_used_cents == 7


class TestAlertsAfterSettlement:
    """Alerts are evaluated after settlement and cannot affect it."""

    @pytest.mark.asyncio
    async def test_near_limit_alert_emitted(self, config, clock) -> None:
        received = []

        async def collect(alert):
            received.append(alert)

        emitter = AlertEmitter([collect])
        store = InMemoryTenantStore()
        store.add_tenant("t", TierLimits(monthly_cents=1_000, daily_cents=5_000), now=clock.now())
        limiter = UsageLimiter(store, config, clock=clock, alerts=emitter)

        await limiter.record_usage("t", "u", None, HAIKU, 850 * TOKENS_PER_CENT, 1)
        await emitter.drain()

        assert len(received) == 1
        assert received[0].level == AlertLevel.WARNING
        assert received[0].scope == AlertScope.MONTHLY
        assert received[0].percent_used == 85.0

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_roll_back_settlement(self, config, clock) -> None:
        async def explode(alert):
            raise RuntimeError("pager down")

        emitter = AlertEmitter([explode])
        store = InMemoryTenantStore()
        store.add_tenant("t", TierLimits(monthly_cents=1_000, daily_cents=1_000), now=clock.now())
        limiter = UsageLimiter(store, config, clock=clock, alerts=emitter)

        settlement = await limiter.record_usage("t", "u", None, HAIKU, 950 * TOKENS_PER_CENT, 1)
        await emitter.drain()

        assert settlement.applied
        assert (await store.get_budget_state("t")).monthly_used_cents == 950
        assert emitter.pending == 0

    @pytest.mark.asyncio
    async def test_replay_schedules_no_alert(self, config, clock) -> None:
        received = []

        async def collect(alert):
            received.append(alert)

        emitter = AlertEmitter([collect])
        store = InMemoryTenantStore()
        store.add_tenant("t", TierLimits(monthly_cents=1_000, daily_cents=5_000), now=clock.now())
        limiter = UsageLimiter(store, config, clock=clock, alerts=emitter)

        await limiter.record_usage("t", "u", None, HAIKU, 850 * TOKENS_PER_CENT, 1, request_id="r")
        await emitter.drain()
        await limiter.record_usage("t", "u", None, HAIKU, 850 * TOKENS_PER_CENT, 1, request_id="r")
        await emitter.drain()

        assert len(received) == 1


class TestStatsAndLimits:
    """Test stats, limit updates and tier defaults."""

    @pytest.mark.asyncio
    async def test_get_usage_stats(self, store, limiter, limits, clock) -> None:
        store.add_tenant("t-stats", limits, now=clock.now(), monthly_used_cents=8_000, daily_used_cents=100)
        stats = await limiter.get_usage_stats("t-stats")
        assert stats.monthly_used == 8_000
        assert stats.percent_used == 80.0
        assert stats.daily_percent_used == 10.0
        assert stats.is_near_limit

    @pytest.mark.asyncio
    async def test_get_usage_stats_unknown_tenant(self, limiter) -> None:
        with pytest.raises(TenantNotFound):
            await limiter.get_usage_stats("ghost")

    @pytest.mark.asyncio
    async def test_update_budget_limits(self, limiter) -> None:
        stats = await limiter.update_budget_limits(TENANT_ID, monthly_budget_cents=25_000)
        assert stats.monthly_limit == 25_000
        assert stats.daily_limit == 1_000

        stats = await limiter.update_budget_limits(TENANT_ID, daily_limit_cents=2_000)
        assert stats.monthly_limit == 25_000
        assert stats.daily_limit == 2_000

    @pytest.mark.asyncio
    async def test_update_budget_limits_unknown_tenant(self, limiter) -> None:
        with pytest.raises(TenantNotFound):
            await limiter.update_budget_limits("ghost", monthly_budget_cents=1_000)

    def test_default_limits_for_tier_increase(self, limiter) -> None:
        free = limiter.default_limits_for_tier(Tier.FREE)
        pro = limiter.default_limits_for_tier(Tier.PRO)
        enterprise = limiter.default_limits_for_tier(Tier.ENTERPRISE)
        assert free.monthly_cents < pro.monthly_cents < enterprise.monthly_cents
        assert free.daily_cents < pro.daily_cents < enterprise.daily_cents

    def test_estimate_tokens(self, limiter) -> None:
        assert limiter.estimate_tokens("abcdefgh") == 2
