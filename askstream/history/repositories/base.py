# askstream/history/repositories/base.py
from __future__ import annotations

from typing import Protocol

from askstream.history.models import HistoryRecord


class HistoryRepository(Protocol):
    """
    Interface for storing and retrieving completed asks.
    """

    async def append(self, record: HistoryRecord) -> None:
        """
        Store a record ahead of every existing one.
        """
        ...

    async def list(self) -> list[HistoryRecord]:
        """
        Return all records, most recent first.
        """
        ...

    async def clear(self) -> None:
        """
        Remove every record.
        """
        ...

    async def close(self) -> None:
        """
        Release any underlying resources.
        """
        ...
