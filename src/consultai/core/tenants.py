"""Tenant budget state store: protocol and in-memory implementation."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Protocol

from consultai.contracts.enums import Tier
from consultai.core.budget import BudgetLedger, apply_window_resets
from consultai.core.config import TierLimits
from consultai.core.ledger import AuditSink, InMemoryAuditSink, UsageRecord

logger = logging.getLogger(__name__)


class TenantStore(Protocol):
    """Storage for per-tenant budget ledgers and their usage records.

    Invariants:
    - Counters are only ever incremented by settlement and zeroed by resets
    - ``settle`` appends the record and increments counters as one unit,
      and is idempotent on ``record.request_id``
    - ``reset_windows`` resets each window at most once per boundary
    """

    async def get_budget_state(self, tenant_id: str) -> BudgetLedger | None:
        """Current ledger, or None if the tenant does not exist."""
        ...

    async def get_tenant_for_user(self, user_id: str) -> str | None:
        """Tenant the user belongs to, if any."""
        ...

    async def reset_windows(self, tenant_id: str, now: datetime) -> BudgetLedger | None:
        """Apply due monthly/daily resets and return the resulting ledger."""
        ...

    async def update_budget_state(self, tenant_id: str, delta_cents: int, now: datetime) -> BudgetLedger:
        """Atomically add ``delta_cents`` to both counters, after any due resets."""
        ...

    async def is_settled(self, request_id: str) -> bool:
        """Whether a usage record already exists for ``request_id``."""
        ...

    async def settle(self, record: UsageRecord, now: datetime) -> bool:
        """Increment counters and append the record. False if already settled."""
        ...

    async def update_limits(
        self,
        tenant_id: str,
        monthly_limit_cents: int | None = None,
        daily_limit_cents: int | None = None,
    ) -> BudgetLedger:
        """Change a tenant's limits."""
        ...

    async def list_usage(self, tenant_id: str, limit: int = 100) -> list[UsageRecord]:
        """Most recent usage records for a tenant, newest first."""
        ...


class InMemoryTenantStore:
    """Tenant store kept in process memory.

    Each tenant has its own asyncio.Lock; every mutation runs under it, so
    concurrent settlements for one tenant are serialized and none are lost.
    """

    def __init__(self, audit_sink: AuditSink | None = None) -> None:
        self.audit_sink = audit_sink if audit_sink is not None else InMemoryAuditSink()
        self._ledgers: dict[str, BudgetLedger] = {}
        self._users: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._settled: set[str] = set()
        self._records: dict[str, list[UsageRecord]] = defaultdict(list)

    def add_tenant(
        self,
        tenant_id: str,
        limits: TierLimits,
        tier: Tier = Tier.FREE,
        users: tuple[str, ...] | list[str] = (),
        now: datetime | None = None,
        **fields: object,
    ) -> BudgetLedger:
        """Register a tenant (and its users) with the given limits.

        ``now`` stamps both windows as current, so seeded counters survive
        the next admission check.
        """
        if now is not None:
            fields.setdefault("last_reset_at", now)
            fields.setdefault("updated_at", now)
        ledger = BudgetLedger(
            tenant_id=tenant_id,
            tier=tier,
            monthly_limit_cents=limits.monthly_cents,
            daily_limit_cents=limits.daily_cents,
            **fields,
        )
        self._ledgers[tenant_id] = ledger
        for user_id in users:
            self._users[user_id] = tenant_id
        return ledger

    def _require(self, tenant_id: str) -> BudgetLedger:
        ledger = self._ledgers.get(tenant_id)
        if ledger is None:
            raise KeyError(f"Unknown tenant: {tenant_id}")
        return ledger

    async def get_budget_state(self, tenant_id: str) -> BudgetLedger | None:
        return self._ledgers.get(tenant_id)

    async def get_tenant_for_user(self, user_id: str) -> str | None:
        return self._users.get(user_id)

    async def reset_windows(self, tenant_id: str, now: datetime) -> BudgetLedger | None:
        if tenant_id not in self._ledgers:
            return None
        async with self._locks[tenant_id]:
            current = self._ledgers[tenant_id]
            reset = apply_window_resets(current, now)
            if reset is not current:
                logger.info(f"Reset budget windows for tenant {tenant_id}")
                self._ledgers[tenant_id] = reset
            return reset

    async def update_budget_state(self, tenant_id: str, delta_cents: int, now: datetime) -> BudgetLedger:
        if delta_cents < 0:
            raise ValueError("delta_cents must be >= 0")
        async with self._locks[tenant_id]:
            return self._increment(tenant_id, delta_cents, now)

    def _increment(self, tenant_id: str, delta_cents: int, now: datetime) -> BudgetLedger:
        current = apply_window_resets(self._require(tenant_id), now)
        updated = current.model_copy(
            update={
                "monthly_used_cents": current.monthly_used_cents + delta_cents,
                "daily_used_cents": current.daily_used_cents + delta_cents,
                "updated_at": now,
            }
        )
        self._ledgers[tenant_id] = updated
        return updated

    async def is_settled(self, request_id: str) -> bool:
        return request_id in self._settled

    async def settle(self, record: UsageRecord, now: datetime) -> bool:
        async with self._locks[record.tenant_id]:
            if record.request_id in self._settled:
                return False
            self._require(record.tenant_id)
            self.audit_sink.record(record)
            self._records[record.tenant_id].append(record)
            self._increment(record.tenant_id, record.cost_cents, now)
            self._settled.add(record.request_id)
            return True

    async def update_limits(
        self,
        tenant_id: str,
        monthly_limit_cents: int | None = None,
        daily_limit_cents: int | None = None,
    ) -> BudgetLedger:
        async with self._locks[tenant_id]:
            current = self._require(tenant_id)
            update: dict[str, int] = {}
            if monthly_limit_cents is not None:
                update["monthly_limit_cents"] = monthly_limit_cents
            if daily_limit_cents is not None:
                update["daily_limit_cents"] = daily_limit_cents
            updated = BudgetLedger.model_validate({**current.model_dump(), **update})
            self._ledgers[tenant_id] = updated
            return updated

    async def list_usage(self, tenant_id: str, limit: int = 100) -> list[UsageRecord]:
        records = self._records.get(tenant_id, [])
        return list(reversed(records))[:limit]
