"""Embedding provider interface and the fallback-aware embedding service."""

import hashlib
import logging
import math
from typing import Protocol

from pydantic import BaseModel

from consultai.contracts.enums import EmbeddingSource
from consultai.contracts.reasons import ReasonCode
from consultai.core.errors import EmbeddingFailed
from consultai.search.similarity import normalize

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Protocol for generating text embeddings."""

    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
    ) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed
            model: Optional model name

        Returns:
            List of embedding vectors (same order as input texts)
        """
        ...


def _hash_seeded_vector(digest: bytes, dims: int) -> list[float]:
    embedding = []
    for i in range(dims):
        byte_idx = i % len(digest)
        seed_val = digest[byte_idx] + (i // len(digest)) * 256
        val = math.sin(seed_val * 0.1) * 0.5 + 0.5
        embedding.append(val - 0.5)
    return normalize(embedding)


def fallback_embedding(text: str, dims: int) -> list[float]:
    """Deterministic unit vector used when the provider cannot embed ``text``."""
    return _hash_seeded_vector(hashlib.sha256(text.encode()).digest(), dims)


class MockEmbeddingProvider:
    """Mock implementation for testing without external API calls.

    Generates deterministic pseudo-embeddings based on text hash.
    """

    def __init__(
        self,
        dims: int = 1536,
        call_counter: dict[str, int] | None = None,
    ) -> None:
        """Initialize mock provider.

        Args:
            dims: Embedding dimensions
            call_counter: Optional dict to track call counts
        """
        self.dims = dims
        self._call_counter = call_counter if call_counter is not None else {}
        self._cached_embeddings: dict[str, list[float]] = {}

    def get_call_count(self) -> int:
        """Get total number of embed calls."""
        return self._call_counter.get("total", 0)

    def set_embedding_for_text(self, text: str, embedding: list[float]) -> None:
        """Set a specific embedding to return for a text."""
        self._cached_embeddings[text] = embedding

    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
    ) -> list[list[float]]:
        """Generate deterministic pseudo-embeddings for texts."""
        self._call_counter["total"] = self._call_counter.get("total", 0) + 1

        results = []
        for text in texts:
            if text in self._cached_embeddings:
                results.append(self._cached_embeddings[text])
            else:
                results.append(_hash_seeded_vector(hashlib.md5(text.encode()).digest(), self.dims))

        return results


class EmbeddingResult(BaseModel):
    """A vector plus its provenance."""

    vector: list[float]
    source: EmbeddingSource
    model: str | None = None
    error: str | None = None

    model_config = {"extra": "forbid"}

    @property
    def is_fallback(self) -> bool:
        return self.source == EmbeddingSource.FALLBACK


class EmbeddingService:
    """Embeds text through a provider, degrading to a tagged fallback vector.

    Never raises to the caller: empty input, provider errors and vectors of the
    wrong dimensionality all yield ``source=fallback`` so the entry can be
    backfilled later.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dims: int = 1536,
        model: str | None = None,
    ) -> None:
        self.provider = provider
        self.dims = dims
        self.model = model

    async def embed_text(self, text: str) -> EmbeddingResult:
        try:
            vector = await self._embed_with_provider(text)
        except EmbeddingFailed as exc:
            logger.warning(f"Using fallback embedding ({exc.reason_code.value}): {exc}")
            return EmbeddingResult(
                vector=fallback_embedding(text, self.dims),
                source=EmbeddingSource.FALLBACK,
                error=exc.reason_code.value,
            )
        return EmbeddingResult(vector=vector, source=EmbeddingSource.PROVIDER, model=self.model)

    async def _embed_with_provider(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingFailed("Cannot embed empty text", ReasonCode.EMBEDDING_EMPTY_INPUT)

        try:
            vectors = await self.provider.embed([text], model=self.model)
        except Exception as exc:
            raise EmbeddingFailed(
                f"Embedding provider error: {exc}", ReasonCode.EMBEDDING_PROVIDER_ERROR
            ) from exc

        if len(vectors) != 1 or len(vectors[0]) != self.dims:
            got = len(vectors[0]) if vectors else 0
            raise EmbeddingFailed(
                f"Expected a {self.dims}-dim vector, got {got}",
                ReasonCode.EMBEDDING_DIMENSION_MISMATCH,
            )
        return normalize(vectors[0])
