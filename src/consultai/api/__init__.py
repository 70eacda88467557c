"""API routes."""

from consultai.api.ai import router as ai_router
from consultai.api.knowledge import router as knowledge_router
from consultai.api.usage import router as usage_router

__all__ = ["ai_router", "knowledge_router", "usage_router"]
