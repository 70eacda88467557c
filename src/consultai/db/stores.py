"""SQL implementations of the tenant and embedding stores."""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultai.contracts.enums import EmbeddingSource, Tier
from consultai.core.budget import BudgetLedger, apply_window_resets
from consultai.core.config import TierLimits
from consultai.core.ledger import AuditSink, UsageRecord
from consultai.db.repos import EmbeddingRepo, TenantRepo, UsageRepo
from consultai.db.session import db_session, get_session_factory, run_in_tx
from consultai.search.similarity import normalize
from consultai.search.store import (
    DEFAULT_MIN_SIMILARITY,
    DEFAULT_TOP_K,
    KnowledgeEmbedding,
    SearchHit,
    rank_candidates,
)

logger = logging.getLogger(__name__)


class SqlTenantStore:
    """TenantStore backed by the tenants/usage_records tables.

    Settlement inserts the usage row (unique request_id) and increments the
    counters with ``SET x = x + :delta`` in one transaction, so concurrent
    settlements never lose updates and a replay rolls back cleanly. Window
    resets are compare-and-set updates guarded on the window stamps that were
    read.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self.audit_sink = audit_sink

    async def create_tenant(
        self,
        tenant_id: str,
        limits: TierLimits,
        tier: Tier = Tier.FREE,
        users: Iterable[str] = (),
        name: str | None = None,
        now: datetime | None = None,
    ) -> BudgetLedger:
        """Create a tenant and its user memberships."""

        async def create(session: AsyncSession) -> BudgetLedger | None:
            repo = TenantRepo(session)
            await repo.create_tenant(
                tenant_id,
                monthly_limit_cents=limits.monthly_cents,
                daily_limit_cents=limits.daily_cents,
                tier=tier,
                name=name,
                now=now,
            )
            for user_id in users:
                await repo.add_user(tenant_id, user_id)
            return await repo.get_ledger(tenant_id)

        async with db_session(self._session_factory) as session:
            ledger = await run_in_tx(session, create)
        if ledger is None:
            raise KeyError(f"Unknown tenant: {tenant_id}")
        return ledger

    async def get_budget_state(self, tenant_id: str) -> BudgetLedger | None:
        async with db_session(self._session_factory) as session:
            return await TenantRepo(session).get_ledger(tenant_id)

    async def get_tenant_for_user(self, user_id: str) -> str | None:
        async with db_session(self._session_factory) as session:
            return await TenantRepo(session).get_tenant_for_user(user_id)

    async def reset_windows(self, tenant_id: str, now: datetime) -> BudgetLedger | None:
        async with db_session(self._session_factory) as session:
            async with session.begin():
                repo = TenantRepo(session)
                ledger = await repo.get_ledger(tenant_id)
                if ledger is None:
                    return None
                reset = apply_window_resets(ledger, now)
                if reset is ledger:
                    return ledger
                applied = await repo.apply_reset(ledger, reset)

        if applied:
            logger.info(f"Reset budget windows for tenant {tenant_id}")
            return reset
        logger.debug(f"Concurrent reset for tenant {tenant_id}, re-reading ledger")
        return await self.get_budget_state(tenant_id)

    async def _reset_then_increment(
        self, repo: TenantRepo, tenant_id: str, delta_cents: int, now: datetime
    ) -> None:
        ledger = await repo.get_ledger(tenant_id)
        if ledger is None:
            raise KeyError(f"Unknown tenant: {tenant_id}")
        reset = apply_window_resets(ledger, now)
        if reset is not ledger:
            await repo.apply_reset(ledger, reset)
        await repo.increment(tenant_id, delta_cents, now)

    async def update_budget_state(self, tenant_id: str, delta_cents: int, now: datetime) -> BudgetLedger:
        if delta_cents < 0:
            raise ValueError("delta_cents must be >= 0")

        async def increment(session: AsyncSession) -> BudgetLedger | None:
            repo = TenantRepo(session)
            await self._reset_then_increment(repo, tenant_id, delta_cents, now)
            return await repo.get_ledger(tenant_id)

        async with db_session(self._session_factory) as session:
            ledger = await run_in_tx(session, increment)
        if ledger is None:
            raise KeyError(f"Unknown tenant: {tenant_id}")
        return ledger

    async def is_settled(self, request_id: str) -> bool:
        async with db_session(self._session_factory) as session:
            return await UsageRepo(session).request_settled(request_id)

    async def settle(self, record: UsageRecord, now: datetime) -> bool:
        async def apply(session: AsyncSession) -> bool:
            usage = UsageRepo(session)
            if await usage.request_settled(record.request_id):
                return False
            await usage.insert_record(record)
            await self._reset_then_increment(
                TenantRepo(session), record.tenant_id, record.cost_cents, now
            )
            return True

        try:
            async with db_session(self._session_factory) as session:
                applied = await run_in_tx(session, apply)
        except IntegrityError:
            logger.debug(f"Request {record.request_id} settled concurrently")
            return False

        if not applied:
            logger.debug(f"Request {record.request_id} already settled")
            return False
        if self.audit_sink is not None:
            self.audit_sink.record(record)
        return True

    async def update_limits(
        self,
        tenant_id: str,
        monthly_limit_cents: int | None = None,
        daily_limit_cents: int | None = None,
    ) -> BudgetLedger:
        for value in (monthly_limit_cents, daily_limit_cents):
            if value is not None and value <= 0:
                raise ValueError("limits must be > 0")

        async def update(session: AsyncSession) -> BudgetLedger | None:
            repo = TenantRepo(session)
            await repo.update_limits(tenant_id, monthly_limit_cents, daily_limit_cents)
            return await repo.get_ledger(tenant_id)

        async with db_session(self._session_factory) as session:
            ledger = await run_in_tx(session, update)
        if ledger is None:
            raise KeyError(f"Unknown tenant: {tenant_id}")
        return ledger

    async def list_usage(self, tenant_id: str, limit: int = 100) -> list[UsageRecord]:
        async with db_session(self._session_factory) as session:
            return await UsageRepo(session).list_for_tenant(tenant_id, limit=limit)


class SqlEmbeddingStore:
    """EmbeddingStore backed by the knowledge_embeddings table.

    Search loads the candidate vectors and ranks them in process.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    async def upsert(
        self,
        entry_id: str,
        vector: list[float],
        source: EmbeddingSource = EmbeddingSource.PROVIDER,
        model: str | None = None,
        updated_at: datetime | None = None,
    ) -> KnowledgeEmbedding:
        if not vector:
            raise ValueError("vector cannot be empty")
        embedding = KnowledgeEmbedding(
            entry_id=entry_id,
            vector=normalize(vector),
            dims=len(vector),
            source=source,
            model=model,
            updated_at=updated_at or datetime.now(timezone.utc),
        )
        async with db_session(self._session_factory) as session:
            await run_in_tx(session, lambda tx: EmbeddingRepo(tx).upsert(embedding))
        return embedding

    async def get(self, entry_id: str) -> KnowledgeEmbedding | None:
        async with db_session(self._session_factory) as session:
            return await EmbeddingRepo(session).get(entry_id)

    async def delete(self, entry_id: str) -> bool:
        async with db_session(self._session_factory) as session:
            return await run_in_tx(session, lambda tx: EmbeddingRepo(tx).delete(entry_id))

    async def search(
        self,
        query_vector: list[float],
        candidates: Iterable[str] | None = None,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SearchHit]:
        async with db_session(self._session_factory) as session:
            pool = await EmbeddingRepo(session).list_embeddings(candidates)
        if not pool:
            return []
        return rank_candidates(query_vector, pool, top_k=top_k, min_similarity=min_similarity)

    async def list_fallback(self) -> list[str]:
        async with db_session(self._session_factory) as session:
            return await EmbeddingRepo(session).list_fallback_ids()
