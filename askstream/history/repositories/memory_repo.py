# askstream/history/repositories/memory_repo.py
from __future__ import annotations

import asyncio

from askstream.history.models import HistoryRecord
from askstream.history.repositories.base import HistoryRepository


class InMemoryHistoryRepo(HistoryRepository):
    """Process-local history, lost on exit."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: list[HistoryRecord] = []

    async def append(self, record: HistoryRecord) -> None:
        async with self._lock:
            self._records.insert(0, record)

    async def list(self) -> list[HistoryRecord]:
        async with self._lock:
            return list(self._records)

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()

    async def close(self) -> None:
        pass
