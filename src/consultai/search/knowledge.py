"""Knowledge entries as seen by the search and job layers."""

from datetime import datetime, timezone
from typing import Protocol

from pydantic import BaseModel, Field


class KnowledgeEntry(BaseModel):
    """A knowledge-base entry. Owned by the application; read here."""

    entry_id: str
    user_id: str
    tenant_id: str | None = None
    project_id: str | None = None
    title: str
    content: str = ""
    summary: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "forbid"}

    @property
    def embedding_text(self) -> str:
        """Text sent to the embedding provider."""
        return f"{self.title}\n\n{self.content}".strip()


class KnowledgeSource(Protocol):
    """Read/write access to knowledge entries."""

    async def get_entry(self, entry_id: str) -> KnowledgeEntry | None:
        ...

    async def list_unsummarized(self, user_id: str, limit: int = 10) -> list[KnowledgeEntry]:
        """Entries of a user without a summary, oldest first."""
        ...

    async def save_summary(self, entry_id: str, summary: str) -> None:
        ...


class InMemoryKnowledgeSource:
    """Knowledge source kept in a dict."""

    def __init__(self, entries: list[KnowledgeEntry] | None = None) -> None:
        self._entries: dict[str, KnowledgeEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: KnowledgeEntry) -> None:
        self._entries[entry.entry_id] = entry

    def remove(self, entry_id: str) -> None:
        self._entries.pop(entry_id, None)

    async def get_entry(self, entry_id: str) -> KnowledgeEntry | None:
        return self._entries.get(entry_id)

    async def list_unsummarized(self, user_id: str, limit: int = 10) -> list[KnowledgeEntry]:
        pending = [e for e in self._entries.values() if e.user_id == user_id and not e.summary]
        pending.sort(key=lambda e: e.updated_at)
        return pending[:limit]

    async def save_summary(self, entry_id: str, summary: str) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(f"Unknown knowledge entry: {entry_id}")
        self._entries[entry_id] = entry.model_copy(update={"summary": summary})
