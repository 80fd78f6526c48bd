"""
History of completed asks.

Records are written by the session coordinator once a stream finishes and
read back most recent first.
"""

from __future__ import annotations

from .models import HistoryRecord, now_ms
from .repositories.base import HistoryRepository
from .repositories.jsonl_repo import AsyncJsonlHistoryRepo
from .repositories.memory_repo import InMemoryHistoryRepo
from .repositories.sql_repo import AsyncSqlHistoryRepo

__all__ = [
    "AsyncJsonlHistoryRepo",
    "AsyncSqlHistoryRepo",
    "HistoryRecord",
    "HistoryRepository",
    "InMemoryHistoryRepo",
    "now_ms",
]
