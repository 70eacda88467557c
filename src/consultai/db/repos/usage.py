"""Usage record repository (append-only)."""

from typing import Any

from sqlalchemy import func, insert, select

from consultai.contracts.enums import UsageAction
from consultai.core.ledger import UsageRecord
from consultai.db.repos.base import BaseRepo
from consultai.db.schema import usage_records


class UsageRepo(BaseRepo):
    """Repository for usage_records table."""

    async def insert_record(self, record: UsageRecord) -> None:
        """Append a record. Raises IntegrityError on a duplicate request_id."""
        await self.session.execute(
            insert(usage_records).values(
                id=record.record_id,
                request_id=record.request_id,
                tenant_id=record.tenant_id,
                user_id=record.user_id,
                project_id=record.project_id,
                knowledge_id=record.knowledge_id,
                model=record.model,
                action=record.action.value,
                prompt_excerpt=record.prompt_excerpt,
                response_excerpt=record.response_excerpt,
                tokens_used=record.tokens_used,
                cost_cents=record.cost_cents,
                latency_ms=record.latency_ms,
                meta=record.metadata,
                occurred_at=record.occurred_at,
            )
        )

    async def request_settled(self, request_id: str) -> bool:
        result = await self.session.execute(
            select(usage_records.c.id).where(usage_records.c.request_id == request_id).limit(1)
        )
        return result.first() is not None

    def _to_record(self, row: Any) -> UsageRecord:
        return UsageRecord(
            record_id=row["id"],
            request_id=row["request_id"],
            occurred_at=self.utc_or_none(row["occurred_at"]),
            tenant_id=row["tenant_id"],
            user_id=row["user_id"],
            project_id=row["project_id"],
            knowledge_id=row["knowledge_id"],
            model=row["model"],
            action=UsageAction(row["action"]),
            prompt_excerpt=row["prompt_excerpt"],
            response_excerpt=row["response_excerpt"],
            tokens_used=row["tokens_used"],
            cost_cents=row["cost_cents"],
            latency_ms=row["latency_ms"],
            metadata=row["meta"] or {},
        )

    async def list_for_tenant(self, tenant_id: str, limit: int = 100) -> list[UsageRecord]:
        """Most recent records for a tenant, newest first."""
        result = await self.session.execute(
            select(usage_records)
            .where(usage_records.c.tenant_id == tenant_id)
            .order_by(usage_records.c.occurred_at.desc(), usage_records.c.id.desc())
            .limit(limit)
        )
        return [self._to_record(row) for row in result.mappings().fetchall()]

    async def total_cents(self, tenant_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(usage_records.c.cost_cents), 0)).where(
                usage_records.c.tenant_id == tenant_id
            )
        )
        return int(result.scalar_one())
