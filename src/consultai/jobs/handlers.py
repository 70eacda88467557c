"""Handlers for embedding and summary jobs."""

import logging
from typing import Any

from consultai.contracts.enums import JobType, TaskType
from consultai.contracts.models import TaskDescriptor
from consultai.core.errors import BudgetExceeded, TenantNotFound
from consultai.jobs.constants import BATCH_SUMMARY_LIMIT
from consultai.jobs.models import AsyncJob, JobOutcome
from consultai.jobs.worker import Handler
from consultai.orchestration.orchestrator import Orchestrator
from consultai.search.knowledge import KnowledgeEntry, KnowledgeSource
from consultai.search.service import KnowledgeSearch

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize the following knowledge entry in 2-3 sentences, "
    "focusing on the key points.\n\nTitle: {title}\n\n{content}"
)


class MissingEntryError(Exception):
    """Knowledge entry referenced by a job does not exist."""


def build_summary_task(entry: KnowledgeEntry, request_id: str, tenant_id: str | None) -> TaskDescriptor:
    """Quick-summary task for one entry."""
    return TaskDescriptor(
        type=TaskType.QUICK_SUMMARY,
        prompt=SUMMARY_PROMPT.format(title=entry.title, content=entry.content),
        complexity=2,
        user_id=entry.user_id,
        tenant_id=tenant_id or entry.tenant_id,
        project_id=entry.project_id,
        knowledge_id=entry.entry_id,
        request_id=request_id,
    )


def make_embedding_handler(knowledge: KnowledgeSource, search: KnowledgeSearch) -> Handler:
    """Create the handler that (re)embeds a knowledge entry.

    A deleted entry has its stored vector removed and the job completes.
    """

    async def handle_embedding(job: AsyncJob) -> None:
        entry_id = str(job.payload["entry_id"])
        entry = await knowledge.get_entry(entry_id)
        if entry is None:
            removed = await search.remove_entry(entry_id)
            logger.info(f"Entry {entry_id} no longer exists; removed embedding={removed}")
            return
        await search.index_entry(entry)

    return handle_embedding


async def _summarize(
    orchestrator: Orchestrator,
    knowledge: KnowledgeSource,
    entry_id: str,
    job: AsyncJob,
) -> None:
    entry = await knowledge.get_entry(entry_id)
    if entry is None:
        raise MissingEntryError(f"Knowledge entry not found: {entry_id}")
    # One request id per attempt and entry: a retried attempt is a new provider call.
    request_id = f"job:{job.job_id}:{job.attempts_made}:{entry_id}"
    response = await orchestrator.process_request(
        build_summary_task(entry, request_id, job.payload.get("tenant_id"))
    )
    await knowledge.save_summary(entry_id, response.content)
    logger.info(f"Saved summary for entry {entry_id} ({response.cost_cents}c)")


def make_summary_handler(knowledge: KnowledgeSource, orchestrator: Orchestrator) -> Handler:
    """Create the handler that summarizes one knowledge entry."""

    async def handle_summary(job: AsyncJob) -> None:
        await _summarize(orchestrator, knowledge, str(job.payload["entry_id"]), job)

    return handle_summary


def make_batch_summary_handler(
    knowledge: KnowledgeSource,
    orchestrator: Orchestrator,
    limit: int = BATCH_SUMMARY_LIMIT,
) -> Handler:
    """Create the handler that summarizes several entries.

    Items are processed in payload order and failures are isolated per item.
    Budget and tenant errors stop the batch, since every later item would hit
    them too.
    """

    async def handle_batch_summary(job: AsyncJob) -> JobOutcome:
        items: list[dict[str, Any]] | None = job.payload.get("items")
        if items is None:
            pending = await knowledge.list_unsummarized(str(job.payload["user_id"]), limit=limit)
            items = [{"id": entry.entry_id} for entry in pending]

        outcome = JobOutcome()
        for item in items:
            entry_id = str(item["id"])
            try:
                await _summarize(orchestrator, knowledge, entry_id, job)
                outcome.processed += 1
            except (BudgetExceeded, TenantNotFound):
                raise
            except Exception as e:
                logger.warning(f"Batch job {job.job_id}: entry {entry_id} failed: {e}")
                outcome.failed_items[entry_id] = str(e)
        return outcome

    return handle_batch_summary


def build_handler_registry(
    knowledge: KnowledgeSource,
    search: KnowledgeSearch,
    orchestrator: Orchestrator,
) -> dict[JobType, Handler]:
    """Handler per job type.

    Returns:
        Dict mapping job types to handler functions
    """
    return {
        JobType.EMBEDDING: make_embedding_handler(knowledge, search),
        JobType.SUMMARY: make_summary_handler(knowledge, orchestrator),
        JobType.BATCH_SUMMARY: make_batch_summary_handler(knowledge, orchestrator),
    }
