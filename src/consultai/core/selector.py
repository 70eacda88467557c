"""Deterministic, cost-aware model selection."""

import logging
from collections.abc import Mapping

from consultai.contracts.enums import TaskType
from consultai.contracts.models import TaskDescriptor
from consultai.core.catalog import ModelCatalog, ModelProfile
from consultai.core.errors import NoEligibleModel

logger = logging.getLogger(__name__)

DEFAULT_TASK_PREFERENCES: dict[TaskType, str] = {
    TaskType.QUICK_SUMMARY: "nova-lite",
    TaskType.PROJECT_ANALYSIS: "nova-pro",
    TaskType.RISK_ASSESSMENT: "claude-3-7-sonnet",
    TaskType.TECHNICAL_DOCS: "mistral-large",
    TaskType.REALTIME_ASSIST: "llama-3-8b",
    TaskType.KNOWLEDGE_SEARCH: "nova-lite",
    TaskType.REPORT_GENERATION: "claude-3-7-sonnet",
    TaskType.GENERAL: "nova-lite",
}


class ModelSelector:
    """Pick a model for a task from an immutable catalog.

    Candidates must fit the task's context length and have a per-million-token
    rate at or below the task's budget ceiling. Survivors are ordered by rate,
    then by larger context, then by catalog position. The task type's preferred
    model wins if it survived; otherwise the cheapest survivor is chosen.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        preferences: Mapping[TaskType, str] | None = None,
    ) -> None:
        self.catalog = catalog
        self.preferences = dict(DEFAULT_TASK_PREFERENCES if preferences is None else preferences)

    def eligible(self, task: TaskDescriptor) -> list[ModelProfile]:
        """Return the catalog entries that satisfy the task, sorted for selection."""
        indexed = [
            (i, profile)
            for i, profile in enumerate(self.catalog)
            if profile.max_context_length >= task.context_length
            and profile.cost_per_1m_tokens_cents <= task.budget_ceiling_cents
        ]
        indexed.sort(
            key=lambda item: (
                item[1].cost_per_1m_tokens_cents,
                -item[1].max_context_length,
                item[0],
            )
        )
        return [profile for _, profile in indexed]

    def select(self, task: TaskDescriptor) -> ModelProfile:
        """Select the model for ``task``.

        Raises:
            NoEligibleModel: If no catalog entry fits the task
        """
        candidates = self.eligible(task)
        if not candidates:
            raise NoEligibleModel(task.type.value, task.context_length, task.budget_ceiling_cents)

        preferred = self.preferences.get(task.type)
        if preferred is not None:
            for profile in candidates:
                if profile.model_id == preferred:
                    return profile
            logger.debug(
                f"Preferred model {preferred} not eligible for {task.type.value}, "
                f"using cheapest of {len(candidates)} candidates"
            )
        return candidates[0]
