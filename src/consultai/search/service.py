"""Semantic search over knowledge entries."""

import logging
from collections.abc import Iterable

from consultai.providers.embedding_provider import EmbeddingResult, EmbeddingService
from consultai.search.knowledge import KnowledgeEntry
from consultai.search.store import (
    DEFAULT_MIN_SIMILARITY,
    DEFAULT_TOP_K,
    EmbeddingStore,
    KnowledgeEmbedding,
    SearchHit,
)

logger = logging.getLogger(__name__)


class KnowledgeSearch:
    """Indexes entries into an EmbeddingStore and answers text queries."""

    def __init__(self, embeddings: EmbeddingService, store: EmbeddingStore) -> None:
        self.embeddings = embeddings
        self.store = store

    async def index_entry(self, entry: KnowledgeEntry) -> KnowledgeEmbedding:
        """Embed an entry's title and content and store the vector."""
        result = await self.embeddings.embed_text(entry.embedding_text)
        stored = await self.store.upsert(
            entry.entry_id, result.vector, source=result.source, model=result.model
        )
        logger.info(f"Indexed knowledge entry {entry.entry_id} ({result.source.value})")
        return stored

    async def remove_entry(self, entry_id: str) -> bool:
        return await self.store.delete(entry_id)

    async def embed_query(self, query: str) -> EmbeddingResult:
        return await self.embeddings.embed_text(query)

    async def search(
        self,
        query: str,
        candidates: Iterable[str] | None = None,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SearchHit]:
        """Rank stored entries against a text query.

        A query that could only be embedded with the fallback vector would
        produce meaningless scores, so it returns no hits.
        """
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        result = await self.embed_query(query)
        if result.is_fallback:
            logger.warning(f"Query embedding unavailable ({result.error}); returning no hits")
            return []
        return await self.store.search(
            result.vector, candidates=candidates, top_k=top_k, min_similarity=min_similarity
        )
