"""Embedding storage and similarity search.

``KnowledgeSearch`` is imported from ``consultai.search.service`` directly.
"""

from consultai.search.knowledge import InMemoryKnowledgeSource, KnowledgeEntry, KnowledgeSource
from consultai.search.similarity import cosine_similarity, normalize
from consultai.search.store import (
    EmbeddingStore,
    InMemoryEmbeddingStore,
    KnowledgeEmbedding,
    SearchHit,
    rank_candidates,
)

__all__ = [
    "cosine_similarity",
    "EmbeddingStore",
    "InMemoryEmbeddingStore",
    "InMemoryKnowledgeSource",
    "KnowledgeEmbedding",
    "KnowledgeEntry",
    "KnowledgeSource",
    "normalize",
    "rank_candidates",
    "SearchHit",
]
