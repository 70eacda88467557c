"""Tenant repository: budget ledgers and user membership."""

from datetime import datetime
from typing import Any

from sqlalchemy import insert, select, update

from consultai.contracts.enums import Tier
from consultai.core.budget import BudgetLedger
from consultai.db.repos.base import BaseRepo
from consultai.db.schema import tenant_users, tenants


class TenantRepo(BaseRepo):
    """Repository for tenants and tenant_users tables."""

    async def create_tenant(
        self,
        tenant_id: str,
        monthly_limit_cents: int,
        daily_limit_cents: int,
        tier: Tier = Tier.FREE,
        name: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Create a tenant with zeroed counters and both windows starting at ``now``."""
        now = now or self.now()
        await self.session.execute(
            insert(tenants).values(
                id=tenant_id,
                name=name,
                tier=tier.value,
                monthly_limit_cents=monthly_limit_cents,
                monthly_used_cents=0,
                daily_limit_cents=daily_limit_cents,
                daily_used_cents=0,
                last_reset_at=now,
                updated_at=now,
                created_at=now,
            )
        )

    async def add_user(self, tenant_id: str, user_id: str) -> None:
        await self.session.execute(insert(tenant_users).values(user_id=user_id, tenant_id=tenant_id))

    async def get_tenant_for_user(self, user_id: str) -> str | None:
        result = await self.session.execute(
            select(tenant_users.c.tenant_id).where(tenant_users.c.user_id == user_id)
        )
        return result.scalar_one_or_none()

    def _to_ledger(self, row: Any) -> BudgetLedger:
        return BudgetLedger(
            tenant_id=row["id"],
            tier=Tier(row["tier"]),
            monthly_used_cents=row["monthly_used_cents"],
            monthly_limit_cents=row["monthly_limit_cents"],
            daily_used_cents=row["daily_used_cents"],
            daily_limit_cents=row["daily_limit_cents"],
            last_reset_at=self.utc_or_none(row["last_reset_at"]),
            updated_at=self.utc_or_none(row["updated_at"]),
        )

    async def get_ledger(self, tenant_id: str) -> BudgetLedger | None:
        """Current ledger, or None if the tenant does not exist."""
        result = await self.session.execute(select(tenants).where(tenants.c.id == tenant_id))
        row = result.mappings().fetchone()
        return self._to_ledger(row) if row else None

    async def apply_reset(self, previous: BudgetLedger, reset: BudgetLedger) -> bool:
        """Write ``reset`` only if the row still carries ``previous``'s window stamps.

        Returns:
            True if this call applied the reset, False if another writer got there first
        """
        result = await self.session.execute(
            update(tenants)
            .where(tenants.c.id == previous.tenant_id)
            .where(tenants.c.last_reset_at.is_not_distinct_from(previous.last_reset_at))
            .where(tenants.c.updated_at.is_not_distinct_from(previous.updated_at))
            .values(
                monthly_used_cents=reset.monthly_used_cents,
                daily_used_cents=reset.daily_used_cents,
                last_reset_at=reset.last_reset_at,
                updated_at=reset.updated_at,
            )
        )
        return result.rowcount == 1

    async def increment(self, tenant_id: str, delta_cents: int, now: datetime) -> int:
        """Add ``delta_cents`` to both counters in a single statement.

        Returns:
            Number of rows updated (0 if the tenant does not exist)
        """
        result = await self.session.execute(
            update(tenants)
            .where(tenants.c.id == tenant_id)
            .values(
                monthly_used_cents=tenants.c.monthly_used_cents + delta_cents,
                daily_used_cents=tenants.c.daily_used_cents + delta_cents,
                updated_at=now,
            )
        )
        return result.rowcount

    async def update_limits(
        self,
        tenant_id: str,
        monthly_limit_cents: int | None = None,
        daily_limit_cents: int | None = None,
    ) -> int:
        values: dict[str, int] = {}
        if monthly_limit_cents is not None:
            values["monthly_limit_cents"] = monthly_limit_cents
        if daily_limit_cents is not None:
            values["daily_limit_cents"] = daily_limit_cents
        if not values:
            return 0
        result = await self.session.execute(
            update(tenants).where(tenants.c.id == tenant_id).values(**values)
        )
        return result.rowcount
