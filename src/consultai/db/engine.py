"""Async database engine configuration."""

import asyncio
import weakref

from sqlalchemy import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from consultai.settings import get_settings

_engine: AsyncEngine | None = None

# Engines whose pool hands every session the same connection.
_shared_connection_locks: "weakref.WeakKeyDictionary[Engine, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite (aiosqlite) gets a single shared connection so an in-memory
    database survives across sessions; sessions on it are serialized through
    ``shared_connection_lock``. Other backends get a sized pool.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _shared_connection_locks[engine.sync_engine] = asyncio.Lock()
        return engine
    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=echo,
    )


def shared_connection_lock(engine: AsyncEngine | None) -> asyncio.Lock | None:
    """Lock guarding the engine's single connection, or None for pooled engines."""
    if engine is None:
        return None
    return _shared_connection_locks.get(engine.sync_engine)


def get_async_engine() -> AsyncEngine:
    """Get or create async database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for_url(settings.database_url_async, echo=settings.debug)
    return _engine


def reset_engine() -> None:
    """Reset the engine (for testing)."""
    global _engine
    _engine = None
