"""Database access layer."""

from consultai.db.engine import create_engine_for_url, get_async_engine
from consultai.db.session import db_session, make_session_factory, run_in_tx
from consultai.db.stores import SqlEmbeddingStore, SqlTenantStore

__all__ = [
    "create_engine_for_url",
    "db_session",
    "get_async_engine",
    "make_session_factory",
    "run_in_tx",
    "SqlEmbeddingStore",
    "SqlTenantStore",
]
