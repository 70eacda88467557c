"""Provider interfaces and implementations."""

from consultai.providers.embedding_provider import (
    EmbeddingProvider,
    EmbeddingResult,
    EmbeddingService,
    MockEmbeddingProvider,
    fallback_embedding,
)
from consultai.providers.inference_provider import (
    InferenceProvider,
    InferenceResult,
    MockInferenceProvider,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResult",
    "EmbeddingService",
    "fallback_embedding",
    "InferenceProvider",
    "InferenceResult",
    "MockEmbeddingProvider",
    "MockInferenceProvider",
]
