"""Async session management."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager, nullcontext
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from consultai.db.engine import get_async_engine, reset_engine, shared_connection_lock

T = TypeVar("T")

_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def reset_session_factory() -> None:
    """Reset the session factory (for testing)."""
    global _async_session_factory
    reset_engine()
    _async_session_factory = None


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = make_session_factory(get_async_engine())
    return _async_session_factory


@asynccontextmanager
async def db_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Async context manager yielding an AsyncSession.

    On an engine with a single shared connection (SQLite), sessions are held
    one at a time so their transactions cannot interleave on that connection.
    Sessions must not be nested on such an engine.
    """
    factory = factory or get_session_factory()
    lock: asyncio.Lock | None = shared_connection_lock(factory.kw.get("bind"))
    async with lock if lock is not None else nullcontext():
        async with factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()


async def run_in_tx(
    session: AsyncSession,
    fn: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Run a function inside a transaction, committing on success."""
    async with session.begin():
        result = await fn(session)
    return result
