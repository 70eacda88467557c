"""Knowledge embedding repository."""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, insert, select, update

from consultai.contracts.enums import EmbeddingSource
from consultai.db.repos.base import BaseRepo
from consultai.db.schema import knowledge_embeddings
from consultai.search.store import KnowledgeEmbedding


class EmbeddingRepo(BaseRepo):
    """Repository for knowledge_embeddings table.

    Vectors are stored as JSON arrays and scored in process.
    """

    def _to_embedding(self, row: Any) -> KnowledgeEmbedding:
        return KnowledgeEmbedding(
            entry_id=row["entry_id"],
            vector=[float(x) for x in row["vector"]],
            dims=row["dims"],
            source=EmbeddingSource(row["source"]),
            model=row["model"],
            updated_at=self.utc_or_none(row["updated_at"]),
        )

    async def upsert(self, embedding: KnowledgeEmbedding) -> None:
        """Insert or replace the vector for an entry."""
        values = {
            "vector": embedding.vector,
            "dims": embedding.dims,
            "source": embedding.source.value,
            "model": embedding.model,
            "updated_at": embedding.updated_at,
        }
        result = await self.session.execute(
            update(knowledge_embeddings)
            .where(knowledge_embeddings.c.entry_id == embedding.entry_id)
            .values(**values)
        )
        if result.rowcount == 0:
            await self.session.execute(
                insert(knowledge_embeddings).values(entry_id=embedding.entry_id, **values)
            )

    async def get(self, entry_id: str) -> KnowledgeEmbedding | None:
        result = await self.session.execute(
            select(knowledge_embeddings).where(knowledge_embeddings.c.entry_id == entry_id)
        )
        row = result.mappings().fetchone()
        return self._to_embedding(row) if row else None

    async def delete(self, entry_id: str) -> bool:
        result = await self.session.execute(
            delete(knowledge_embeddings).where(knowledge_embeddings.c.entry_id == entry_id)
        )
        return result.rowcount > 0

    async def list_embeddings(self, entry_ids: Iterable[str] | None = None) -> list[KnowledgeEmbedding]:
        """All stored embeddings, or those of ``entry_ids``."""
        query = select(knowledge_embeddings)
        if entry_ids is not None:
            ids = list(entry_ids)
            if not ids:
                return []
            query = query.where(knowledge_embeddings.c.entry_id.in_(ids))
        result = await self.session.execute(query)
        return [self._to_embedding(row) for row in result.mappings().fetchall()]

    async def list_fallback_ids(self) -> list[str]:
        result = await self.session.execute(
            select(knowledge_embeddings.c.entry_id)
            .where(knowledge_embeddings.c.source == EmbeddingSource.FALLBACK.value)
            .order_by(knowledge_embeddings.c.entry_id)
        )
        return list(result.scalars().all())
