"""Orchestrator: select a model, admit, invoke, settle."""

import logging
import time
from typing import Any

from consultai.contracts.enums import AccuracyLevel, TaskType, UsageAction, Urgency
from consultai.contracts.models import AIResponse, TaskDescriptor
from consultai.contracts.reasons import ReasonCode
from consultai.core.budget import budget_guard
from consultai.core.catalog import ModelProfile, estimate_tokens
from consultai.core.config import CoreConfig
from consultai.core.errors import DuplicateRequest, InferenceFailed, TenantNotFound
from consultai.core.limiter import UsageLimiter
from consultai.core.selector import ModelSelector
from consultai.providers.inference_provider import InferenceProvider

logger = logging.getLogger(__name__)

TASK_ACTIONS: dict[TaskType, UsageAction] = {
    TaskType.QUICK_SUMMARY: UsageAction.SUMMARIZE,
    TaskType.PROJECT_ANALYSIS: UsageAction.ANALYZE,
    TaskType.RISK_ASSESSMENT: UsageAction.ANALYZE,
    TaskType.TECHNICAL_DOCS: UsageAction.GENERATE,
    TaskType.REALTIME_ASSIST: UsageAction.GENERATE,
    TaskType.KNOWLEDGE_SEARCH: UsageAction.EXTRACT,
    TaskType.REPORT_GENERATION: UsageAction.GENERATE,
    TaskType.GENERAL: UsageAction.GENERATE,
}


class Orchestrator:
    """Runs AI tasks end to end against per-tenant budgets.

    The request path is synchronous per call: admission, the provider round
    trip and settlement all finish before ``process_request`` returns. A
    rejected admission happens before any provider call, and a failed provider
    call settles nothing, so neither incurs cost. A request id that is already
    settled, or still running in this process, is refused before the provider
    is called.
    """

    def __init__(
        self,
        config: CoreConfig,
        limiter: UsageLimiter,
        inference: InferenceProvider,
        selector: ModelSelector | None = None,
    ) -> None:
        self.config = config
        self.limiter = limiter
        self.inference = inference
        self.selector = selector or ModelSelector(config.catalog, config.task_preferences)
        self._in_flight: set[str] = set()

    async def resolve_tenant(self, task: TaskDescriptor) -> str:
        """Tenant that pays for ``task``.

        Raises:
            TenantNotFound: If the tenant (or the user's tenant) does not exist
        """
        store = self.limiter.store
        if task.tenant_id is not None:
            if await store.get_budget_state(task.tenant_id) is None:
                raise TenantNotFound(tenant_id=task.tenant_id)
            return task.tenant_id

        tenant_id = await store.get_tenant_for_user(task.user_id)
        if tenant_id is None:
            raise TenantNotFound(user_id=task.user_id)
        return tenant_id

    async def process_request(self, task: TaskDescriptor) -> AIResponse:
        """Run a task.

        1. Select the model (fixed for the rest of the call)
        2. Resolve the tenant and refuse replayed request ids
        3. Admission check on estimated prompt tokens plus a response buffer
        4. Invoke the provider, measuring latency
        5. Settle actual usage
        6. Return the response

        Raises:
            NoEligibleModel: If no catalog model fits the task
            TenantNotFound: If no tenant can be resolved
            DuplicateRequest: If the request id was already used
            BudgetExceeded: If admission is rejected
            InferenceFailed: If the provider call fails
        """
        profile = self.selector.select(task)
        tenant_id = await self.resolve_tenant(task)

        request_id = task.request_id
        if await self.limiter.store.is_settled(request_id) or request_id in self._in_flight:
            logger.warning(f"Refused replay of request {request_id} for tenant {tenant_id}")
            raise DuplicateRequest(request_id)
        self._in_flight.add(request_id)
        try:
            return await self._admit_and_run(task, profile, tenant_id)
        finally:
            self._in_flight.discard(request_id)

    async def _admit_and_run(
        self, task: TaskDescriptor, profile: ModelProfile, tenant_id: str
    ) -> AIResponse:
        estimated_tokens = self.limiter.estimate_tokens(task.prompt) + self.config.response_token_buffer
        check = await self.limiter.check_budget(tenant_id, profile.model_id, estimated_tokens)
        if check.reason_code == ReasonCode.TENANT_NOT_FOUND:
            raise TenantNotFound(tenant_id=tenant_id)
        budget_guard(check)

        if check.stats is not None and check.stats.is_near_limit:
            logger.warning(
                f"Tenant {tenant_id} is at {check.stats.percent_used:.1f}% of monthly budget"
            )

        start = time.monotonic()
        try:
            result = await self.inference.invoke(
                profile.provider_model_id, task.prompt, profile.sampling
            )
        except Exception as e:
            logger.error(f"Inference failed for {profile.model_id} (request {task.request_id}): {e}")
            raise InferenceFailed(profile.model_id, str(e)) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        if result.total_tokens is not None:
            tokens_used = result.total_tokens
            token_source = "provider"
        else:
            tokens_used = estimate_tokens(task.prompt + result.text)
            token_source = "estimate"

        settlement = await self.limiter.record_usage(
            tenant_id,
            task.user_id,
            task.project_id,
            profile.model_id,
            tokens_used,
            latency_ms,
            prompt=task.prompt,
            response=result.text,
            request_id=task.request_id,
            knowledge_id=task.knowledge_id,
            action=TASK_ACTIONS.get(task.type, UsageAction.GENERATE),
            metadata={"task_type": task.type.value, "token_source": token_source},
        )

        metadata: dict[str, Any] = dict(result.raw_metadata)
        metadata.update(
            {
                "provider_model_id": profile.provider_model_id,
                "request_id": task.request_id,
                "tenant_id": tenant_id,
                "token_source": token_source,
                "settled": settlement.applied,
            }
        )
        return AIResponse(
            content=result.text,
            model=profile.model_id,
            tokens_used=tokens_used,
            cost_cents=settlement.record.cost_cents,
            latency_ms=latency_ms,
            metadata=metadata,
        )

    async def generate_project_insights(
        self, project_id: str, context: str, user_id: str, tenant_id: str | None = None
    ) -> AIResponse:
        task = TaskDescriptor(
            type=TaskType.PROJECT_ANALYSIS,
            prompt=f"Analyze this project and provide key insights:\n\n{context}",
            context=context,
            complexity=7,
            project_id=project_id,
            user_id=user_id,
            tenant_id=tenant_id,
        )
        return await self.process_request(task)

    async def assess_project_risk(
        self,
        project_id: str,
        project_data: str,
        user_id: str,
        tenant_id: str | None = None,
        budget_ceiling_cents: int = 100,
    ) -> AIResponse:
        task = TaskDescriptor(
            type=TaskType.RISK_ASSESSMENT,
            prompt=(
                "Assess the risks for this project and provide recommendations:"
                f"\n\n{project_data}"
            ),
            context=project_data,
            complexity=8,
            accuracy_required=AccuracyLevel.CRITICAL,
            budget_ceiling_cents=budget_ceiling_cents,
            project_id=project_id,
            user_id=user_id,
            tenant_id=tenant_id,
        )
        return await self.process_request(task)

    async def search_knowledge(
        self,
        query: str,
        user_id: str,
        context: str | None = None,
        tenant_id: str | None = None,
    ) -> AIResponse:
        task = TaskDescriptor(
            type=TaskType.KNOWLEDGE_SEARCH,
            prompt=f"Search and provide relevant information for: {query}",
            context=context,
            complexity=3,
            urgency=Urgency.REALTIME,
            user_id=user_id,
            tenant_id=tenant_id,
        )
        return await self.process_request(task)

    async def execute(
        self,
        prompt: str,
        user_id: str,
        *,
        tenant_id: str | None = None,
        project_id: str | None = None,
        knowledge_id: str | None = None,
        complexity: int = 3,
        urgency: Urgency = Urgency.BATCH,
        accuracy_required: AccuracyLevel = AccuracyLevel.STANDARD,
        context_length: int = 4000,
        budget_ceiling_cents: int = 100,
        preferred_model: str | None = None,
        request_id: str | None = None,
    ) -> AIResponse:
        """Run a free-form prompt.

        ``preferred_model`` picks the first task type whose preferred model it
        is; the selector still enforces context and rate limits.
        """
        task_type = TaskType.GENERAL
        if preferred_model is not None:
            for candidate, model_id in self.selector.preferences.items():
                if model_id == preferred_model:
                    task_type = candidate
                    break

        fields: dict[str, Any] = {}
        if request_id is not None:
            fields["request_id"] = request_id
        task = TaskDescriptor(
            type=task_type,
            prompt=prompt,
            complexity=complexity,
            urgency=urgency,
            accuracy_required=accuracy_required,
            context_length=context_length,
            budget_ceiling_cents=budget_ceiling_cents,
            user_id=user_id,
            tenant_id=tenant_id,
            project_id=project_id,
            knowledge_id=knowledge_id,
            **fields,
        )
        return await self.process_request(task)
