"""AI task API routes."""

import logging

from fastapi import APIRouter

from consultai.api.deps import get_container, raise_http_error
from consultai.contracts.models import AIResponse, TaskDescriptor
from consultai.core.errors import ConsultAIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/process", response_model=AIResponse)
async def process_task(task: TaskDescriptor) -> AIResponse:
    """Run a task through model selection, admission, inference and settlement."""
    container = get_container()
    try:
        return await container.orchestrator.process_request(task)
    except ConsultAIError as e:
        raise_http_error(e)
        raise
