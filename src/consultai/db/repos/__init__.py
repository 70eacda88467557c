"""Repository classes for database access."""

from consultai.db.repos.base import BaseRepo
from consultai.db.repos.embedding import EmbeddingRepo
from consultai.db.repos.tenant import TenantRepo
from consultai.db.repos.usage import UsageRepo

__all__ = [
    "BaseRepo",
    "EmbeddingRepo",
    "TenantRepo",
    "UsageRepo",
]
