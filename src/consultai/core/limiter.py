"""Usage limiter: pre-call admission and post-call settlement against tenant budgets."""

import logging
from typing import Any
from uuid import uuid4

from pydantic import BaseModel

from consultai.contracts.enums import Tier, UsageAction
from consultai.contracts.models import BudgetCheck, UsageStats
from consultai.contracts.reasons import ReasonCode
from consultai.core.alerts import AlertEmitter, evaluate_alerts
from consultai.core.budget import evaluate_admission, usage_stats
from consultai.core.catalog import estimate_tokens
from consultai.core.clock import Clock, SystemClock
from consultai.core.config import CoreConfig, TierLimits
from consultai.core.errors import TenantNotFound
from consultai.core.ledger import UsageRecord, excerpt
from consultai.core.tenants import TenantStore

logger = logging.getLogger(__name__)


class Settlement(BaseModel):
    """Result of recording usage. ``applied`` is False for a replayed request id."""

    record: UsageRecord
    applied: bool


class UsageLimiter:
    """Admission control and settlement for per-tenant budgets.

    Admission (``check_budget``) reads the ledger without locking and never
    changes counters; two concurrent checks may both pass. Settlement
    (``record_usage``) is the authoritative, atomic write.
    """

    def __init__(
        self,
        store: TenantStore,
        config: CoreConfig,
        clock: Clock | None = None,
        alerts: AlertEmitter | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock or SystemClock()
        self.alerts = alerts

    def estimate_tokens(self, text: str) -> int:
        """Rough token estimate for a prompt."""
        return estimate_tokens(text)

    def calculate_cost(self, model_id: str, tokens: int) -> int:
        """Cost in cents for ``tokens`` on ``model_id`` (ceiling)."""
        return self.config.catalog.cost_for(model_id, tokens)

    async def check_budget(
        self,
        tenant_id: str,
        model_id: str,
        estimated_tokens: int,
    ) -> BudgetCheck:
        """Check whether the tenant can afford an estimated call.

        Due monthly/daily resets are applied first.
        """
        estimated_cost = self.calculate_cost(model_id, estimated_tokens)

        ledger = await self.store.reset_windows(tenant_id, self.clock.now())
        if ledger is None:
            return BudgetCheck(
                allowed=False,
                reason="Tenant not found",
                reason_code=ReasonCode.TENANT_NOT_FOUND,
                estimated_cost_cents=estimated_cost,
            )

        return evaluate_admission(ledger, estimated_cost, self.config.near_limit_percent)

    async def record_usage(
        self,
        tenant_id: str,
        user_id: str,
        project_id: str | None,
        model_id: str,
        actual_tokens: int,
        latency_ms: int,
        *,
        prompt: str = "",
        response: str = "",
        request_id: str | None = None,
        knowledge_id: str | None = None,
        action: UsageAction = UsageAction.GENERATE,
        metadata: dict[str, Any] | None = None,
    ) -> Settlement:
        """Settle a completed call.

        Counter increment and record append happen in one store transaction.
        Replaying the same ``request_id`` changes nothing. Alert evaluation is
        scheduled afterwards and cannot affect the settlement.
        """
        now = self.clock.now()
        record = UsageRecord(
            request_id=request_id or str(uuid4()),
            occurred_at=now,
            tenant_id=tenant_id,
            user_id=user_id,
            project_id=project_id,
            knowledge_id=knowledge_id,
            model=model_id,
            action=action,
            prompt_excerpt=excerpt(prompt),
            response_excerpt=excerpt(response),
            tokens_used=actual_tokens,
            cost_cents=self.calculate_cost(model_id, actual_tokens),
            latency_ms=max(0, latency_ms),
            metadata=metadata or {},
        )

        applied = await self.store.settle(record, now)
        if not applied:
            logger.debug(f"Skipping already settled request {record.request_id}")
            return Settlement(record=record, applied=False)

        if self.alerts is not None:
            self.alerts.schedule(self._check_and_send_alerts(tenant_id, self.alerts))
        return Settlement(record=record, applied=True)

    async def get_usage_stats(self, tenant_id: str) -> UsageStats:
        """Current usage statistics.

        Raises:
            TenantNotFound: If the tenant does not exist
        """
        ledger = await self.store.get_budget_state(tenant_id)
        if ledger is None:
            raise TenantNotFound(tenant_id=tenant_id)
        return usage_stats(ledger, self.config.near_limit_percent)

    async def update_budget_limits(
        self,
        tenant_id: str,
        monthly_budget_cents: int | None = None,
        daily_limit_cents: int | None = None,
    ) -> UsageStats:
        """Change a tenant's limits and return the resulting stats."""
        if await self.store.get_budget_state(tenant_id) is None:
            raise TenantNotFound(tenant_id=tenant_id)
        ledger = await self.store.update_limits(
            tenant_id,
            monthly_limit_cents=monthly_budget_cents,
            daily_limit_cents=daily_limit_cents,
        )
        logger.info(
            f"Updated limits for tenant {tenant_id}: "
            f"monthly={ledger.monthly_limit_cents} daily={ledger.daily_limit_cents}"
        )
        return usage_stats(ledger, self.config.near_limit_percent)

    def default_limits_for_tier(self, tier: Tier) -> TierLimits:
        """Budget limits for a subscription tier."""
        return self.config.limits_for_tier(tier)

    async def _check_and_send_alerts(self, tenant_id: str, emitter: AlertEmitter) -> None:
        stats = await self.get_usage_stats(tenant_id)
        alerts = evaluate_alerts(tenant_id, stats, self.config.alert_thresholds)
        if alerts:
            await emitter.emit(alerts)
