"""Base repository shared by the table repositories."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from consultai.core.clock import as_utc


class BaseRepo:
    """Base repository class.

    Invariants:
    - Repositories never commit; callers own the transaction
    - Timestamps are written and read as UTC
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def now() -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)

    @staticmethod
    def utc_or_none(value: Any) -> datetime | None:
        """Normalize a timestamp read back from the database.

        SQLite returns naive datetimes; they were written as UTC.
        """
        if value is None:
            return None
        return as_utc(value)
