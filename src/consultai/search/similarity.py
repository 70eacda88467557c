"""Vector helpers for similarity search."""

import math


def vector_norm(vector: list[float]) -> float:
    """Euclidean length of a vector."""
    return math.sqrt(sum(x * x for x in vector))


def normalize(vector: list[float]) -> list[float]:
    """Scale a vector to unit length. A zero vector is returned unchanged."""
    norm = vector_norm(vector)
    if norm == 0:
        return list(vector)
    return [x / norm for x in vector]


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Compute cosine similarity between two vectors.

    Vectors of different dimensions, and zero vectors, score 0.0 so they are
    never ranked above a real match.
    """
    if len(vec1) != len(vec2) or not vec1:
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = vector_norm(vec1)
    norm2 = vector_norm(vec2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return dot_product / (norm1 * norm2)
