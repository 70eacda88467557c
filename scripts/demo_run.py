#!/usr/bin/env python3
"""Demo runner for the budgeted AI core.

Seeds a tenant and a few knowledge entries, runs a request through the
orchestrator, then enqueues embedding and summary jobs and drains them with a
worker.

Usage:
    python scripts/demo_run.py

Requires:
    - Docker compose running (postgres + redis)
    - Database migrated (alembic upgrade head)
"""

import asyncio
import logging
import sys
from uuid import uuid4

from redis.asyncio import Redis

from consultai.contracts.enums import Tier
from consultai.core import AlertEmitter, CoreConfig, LoggingAlertObserver, UsageLimiter
from consultai.core.budget import format_cents
from consultai.core.ledger import JsonLogAuditSink
from consultai.db import SqlEmbeddingStore, SqlTenantStore
from consultai.jobs import JobDispatcher, JobWorker, RedisJobQueue
from consultai.jobs.handlers import build_handler_registry
from consultai.orchestration import Orchestrator
from consultai.providers import EmbeddingService, MockEmbeddingProvider, MockInferenceProvider
from consultai.search import InMemoryKnowledgeSource, KnowledgeEntry
from consultai.search.service import KnowledgeSearch
from consultai.settings import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

usage_logger = logging.getLogger("consultai.usage")
usage_logger.setLevel(logging.INFO)

logger = logging.getLogger(__name__)


def seed_knowledge(tenant_id: str, user_id: str) -> InMemoryKnowledgeSource:
    """Three demo entries owned by ``user_id``."""
    topics = [
        ("Kickoff notes", "Scope, milestones and the stakeholder map for the pilot."),
        ("Risk register", "Vendor lock-in, data residency and key-person dependency."),
        ("Retrospective", "Estimates slipped twice; discovery ran long on integrations."),
    ]
    return InMemoryKnowledgeSource(
        [
            KnowledgeEntry(
                entry_id=f"demo-{i + 1}",
                user_id=user_id,
                tenant_id=tenant_id,
                title=title,
                content=content,
            )
            for i, (title, content) in enumerate(topics)
        ]
    )


async def main() -> int:
    """Run the demo and return the process exit code."""
    settings = get_settings()
    config = CoreConfig.from_settings(settings)

    tenant_id = f"demo-{uuid4().hex[:8]}"
    user_id = f"user-{uuid4().hex[:8]}"
    logger.info(f"Starting demo run with tenant_id: {tenant_id}")

    tenants = SqlTenantStore(audit_sink=JsonLogAuditSink())
    await tenants.create_tenant(
        tenant_id, config.limits_for_tier(Tier.PRO), tier=Tier.PRO, users=[user_id], name="Demo"
    )

    alerts = AlertEmitter([LoggingAlertObserver()])
    limiter = UsageLimiter(tenants, config, alerts=alerts)
    orchestrator = Orchestrator(config, limiter, MockInferenceProvider())

    response = await orchestrator.generate_project_insights(
        "demo-project", "A twelve-week CRM migration for a regional retailer.", user_id
    )
    logger.info(f"Insights from {response.model}: {response.cost_cents}c, {response.tokens_used} tokens")

    knowledge = seed_knowledge(tenant_id, user_id)
    search = KnowledgeSearch(
        EmbeddingService(MockEmbeddingProvider(dims=config.embedding_dims), dims=config.embedding_dims),
        SqlEmbeddingStore(),
    )

    redis = Redis.from_url(settings.redis_url, decode_responses=False)
    queue = RedisJobQueue(redis)
    dispatcher = JobDispatcher.from_settings(queue, settings)
    for entry_id in ("demo-1", "demo-2", "demo-3"):
        await dispatcher.enqueue_embedding(entry_id, user_id, tenant_id=tenant_id)
    await dispatcher.enqueue_batch_summary(user_id, tenant_id=tenant_id)

    worker = JobWorker(queue, build_handler_registry(knowledge, search, orchestrator))
    processed = await worker.run(stop_after=4, poll_interval=0.1)
    await alerts.drain()

    stats = await limiter.get_usage_stats(tenant_id)
    status = await dispatcher.get_queue_status()
    await redis.aclose()

    print("\n" + "=" * 60)
    print("DEMO RESULT")
    print("=" * 60)
    print(f"Tenant ID:         {tenant_id}")
    print(f"Jobs processed:    {processed}")
    print(f"Job counts:        {status['job_counts']}")
    print(f"Monthly usage:     {format_cents(stats.monthly_used)} / {format_cents(stats.monthly_limit)}")
    print(f"Daily usage:       {format_cents(stats.daily_used)} / {format_cents(stats.daily_limit)}")
    print(f"Fallback vectors:  {await search.store.list_fallback()}")
    print("=" * 60)

    return 0 if processed == 4 else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
