"""Embedding storage and brute-force cosine-similarity ranking."""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Protocol

from pydantic import BaseModel, Field

from consultai.contracts.enums import EmbeddingSource
from consultai.search.similarity import cosine_similarity, normalize

DEFAULT_TOP_K = 5
DEFAULT_MIN_SIMILARITY = 0.7


class KnowledgeEmbedding(BaseModel):
    """Stored vector for one knowledge entry. ``vector`` is unit length."""

    entry_id: str
    vector: list[float]
    dims: int = Field(gt=0)
    source: EmbeddingSource = EmbeddingSource.PROVIDER
    model: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "forbid"}


class SearchHit(BaseModel):
    """A ranked search result."""

    entry_id: str
    similarity: float
    source: EmbeddingSource = EmbeddingSource.PROVIDER

    model_config = {"extra": "forbid"}


def rank_candidates(
    query_vector: list[float],
    embeddings: Iterable[KnowledgeEmbedding],
    top_k: int = DEFAULT_TOP_K,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> list[SearchHit]:
    """Score, filter and order embeddings against a query.

    Embeddings whose dimensionality differs from the query are skipped, and
    scores at or below ``min_similarity`` are dropped. Results are sorted by
    score descending; ties go to the most recently updated entry, then entry id.

    Raises:
        ValueError: If top_k < 1
    """
    if top_k < 1:
        raise ValueError("top_k must be >= 1")

    scored: list[tuple[float, KnowledgeEmbedding]] = []
    for emb in embeddings:
        if len(emb.vector) != len(query_vector):
            continue
        score = cosine_similarity(query_vector, emb.vector)
        if score > min_similarity:
            scored.append((score, emb))

    scored.sort(key=lambda item: (-item[0], -item[1].updated_at.timestamp(), item[1].entry_id))
    return [
        SearchHit(entry_id=emb.entry_id, similarity=score, source=emb.source)
        for score, emb in scored[:top_k]
    ]


class EmbeddingStore(Protocol):
    """Storage for knowledge-entry vectors."""

    async def upsert(
        self,
        entry_id: str,
        vector: list[float],
        source: EmbeddingSource = EmbeddingSource.PROVIDER,
        model: str | None = None,
    ) -> KnowledgeEmbedding:
        """Normalize and store a vector, replacing any prior one."""
        ...

    async def get(self, entry_id: str) -> KnowledgeEmbedding | None:
        ...

    async def delete(self, entry_id: str) -> bool:
        """Remove a vector. True if one existed."""
        ...

    async def search(
        self,
        query_vector: list[float],
        candidates: Iterable[str] | None = None,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SearchHit]:
        """Rank stored vectors (optionally restricted to ``candidates``)."""
        ...

    async def list_fallback(self) -> list[str]:
        """Entry ids whose vector is a fallback awaiting backfill."""
        ...


class InMemoryEmbeddingStore:
    """Embedding store kept in a dict."""

    def __init__(self) -> None:
        self._embeddings: dict[str, KnowledgeEmbedding] = {}

    def __len__(self) -> int:
        return len(self._embeddings)

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
        self._embeddings[entry_id] = embedding
        return embedding

    async def get(self, entry_id: str) -> KnowledgeEmbedding | None:
        return self._embeddings.get(entry_id)

    async def delete(self, entry_id: str) -> bool:
        return self._embeddings.pop(entry_id, None) is not None

    async def search(
        self,
        query_vector: list[float],
        candidates: Iterable[str] | None = None,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SearchHit]:
        if candidates is None:
            pool = list(self._embeddings.values())
        else:
            pool = [self._embeddings[c] for c in candidates if c in self._embeddings]
        if not pool:
            return []
        return rank_candidates(query_vector, pool, top_k=top_k, min_similarity=min_similarity)

    async def list_fallback(self) -> list[str]:
        return sorted(
            e.entry_id for e in self._embeddings.values() if e.source == EmbeddingSource.FALLBACK
        )
