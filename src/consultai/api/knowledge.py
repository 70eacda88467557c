"""Knowledge search and background job API routes."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from consultai.api.deps import get_container
from consultai.search.store import DEFAULT_MIN_SIMILARITY, DEFAULT_TOP_K, SearchHit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["knowledge"])


class SearchRequest(BaseModel):
    """Semantic search over stored knowledge embeddings."""

    query: str = Field(min_length=1)
    candidates: list[str] | None = None
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1, le=50)
    min_similarity: float = Field(default=DEFAULT_MIN_SIMILARITY, ge=0, le=1)

    model_config = {"extra": "forbid"}


class SearchResponse(BaseModel):
    results: list[SearchHit] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class EmbedRequest(BaseModel):
    """Request to (re)embed a knowledge entry in the background."""

    user_id: str = Field(min_length=1)
    tenant_id: str | None = None
    priority: int = 0

    model_config = {"extra": "forbid"}


class EmbedResponse(BaseModel):
    job_id: str
    entry_id: str

    model_config = {"extra": "forbid"}


@router.post("/knowledge/search", response_model=SearchResponse)
async def search_knowledge(request: SearchRequest) -> SearchResponse:
    """Rank knowledge entries against a text query."""
    container = get_container()
    results = await container.search.search(
        request.query,
        candidates=request.candidates,
        top_k=request.top_k,
        min_similarity=request.min_similarity,
    )
    return SearchResponse(results=results)


@router.post(
    "/knowledge/{entry_id}/embed",
    response_model=EmbedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def embed_entry(entry_id: str, request: EmbedRequest) -> EmbedResponse:
    """Enqueue an embedding job for an entry."""
    container = get_container()
    if await container.knowledge.get_entry(entry_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Knowledge entry {entry_id} not found",
        )
    job_id = await container.dispatcher.enqueue_embedding(
        entry_id, request.user_id, tenant_id=request.tenant_id, priority=request.priority
    )
    return EmbedResponse(job_id=job_id, entry_id=entry_id)


@router.get("/jobs/status")
async def jobs_status() -> dict[str, Any]:
    """Queue name and job counts."""
    container = get_container()
    return await container.dispatcher.get_queue_status()
