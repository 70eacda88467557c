"""Service wiring shared by the API routers."""

import logging

from fastapi import HTTPException, status

from consultai.core.alerts import AlertEmitter, LoggingAlertObserver
from consultai.core.clock import Clock, SystemClock
from consultai.core.config import CoreConfig
from consultai.core.errors import (
    BudgetExceeded,
    ConsultAIError,
    DuplicateRequest,
    InferenceFailed,
    NoEligibleModel,
    TenantNotFound,
)
from consultai.core.ledger import FanOutAuditSink, InMemoryAuditSink, JsonLogAuditSink
from consultai.core.limiter import UsageLimiter
from consultai.core.tenants import InMemoryTenantStore, TenantStore
from consultai.jobs.dispatcher import JobDispatcher
from consultai.jobs.queue import InMemoryJobQueue, JobQueue
from consultai.orchestration.orchestrator import Orchestrator
from consultai.providers.embedding_provider import (
    EmbeddingProvider,
    EmbeddingService,
    MockEmbeddingProvider,
)
from consultai.providers.inference_provider import InferenceProvider, MockInferenceProvider
from consultai.search.knowledge import InMemoryKnowledgeSource, KnowledgeSource
from consultai.search.service import KnowledgeSearch
from consultai.search.store import EmbeddingStore, InMemoryEmbeddingStore
from consultai.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ServiceContainer:
    """All core components, wired once from one CoreConfig."""

    def __init__(
        self,
        config: CoreConfig,
        tenants: TenantStore,
        inference: InferenceProvider,
        embedding_provider: EmbeddingProvider,
        embedding_store: EmbeddingStore,
        knowledge: KnowledgeSource,
        queue: JobQueue,
        clock: Clock | None = None,
        alerts: AlertEmitter | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.config = config
        self.clock = clock or SystemClock()
        self.tenants = tenants
        self.alerts = alerts or AlertEmitter([LoggingAlertObserver()])
        self.limiter = UsageLimiter(tenants, config, clock=self.clock, alerts=self.alerts)
        self.orchestrator = Orchestrator(config, self.limiter, inference)
        self.embeddings = EmbeddingService(
            embedding_provider, dims=config.embedding_dims, model=config.embedding_model
        )
        self.knowledge = knowledge
        self.search = KnowledgeSearch(self.embeddings, embedding_store)
        self.dispatcher = JobDispatcher.from_settings(queue, settings, clock=self.clock)


def build_default_container(settings: Settings | None = None) -> ServiceContainer:
    """In-process container with mock providers and in-memory stores."""
    settings = settings or get_settings()
    config = CoreConfig.from_settings(settings)
    audit_sink = FanOutAuditSink(InMemoryAuditSink(), JsonLogAuditSink())
    return ServiceContainer(
        config=config,
        tenants=InMemoryTenantStore(audit_sink=audit_sink),
        inference=MockInferenceProvider(),
        embedding_provider=MockEmbeddingProvider(dims=config.embedding_dims),
        embedding_store=InMemoryEmbeddingStore(),
        knowledge=InMemoryKnowledgeSource(),
        queue=InMemoryJobQueue(),
        settings=settings,
    )


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the service container (singleton)."""
    global _container
    if _container is None:
        _container = build_default_container()
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """Set the service container (for testing)."""
    global _container
    _container = container


def raise_http_error(exc: ConsultAIError) -> None:
    """Translate a core error into an HTTPException."""
    if isinstance(exc, NoEligibleModel):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if isinstance(exc, TenantNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, BudgetExceeded):
        detail: dict[str, object] = {"message": str(exc), "reason": exc.reason}
        if exc.reason_code is not None:
            detail["reason_code"] = exc.reason_code.value
        if exc.stats is not None:
            detail["stats"] = exc.stats.model_dump()
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail) from exc
    if isinstance(exc, DuplicateRequest):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, InferenceFailed):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    logger.exception(f"Unhandled core error: {exc}")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
