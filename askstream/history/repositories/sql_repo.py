# askstream/history/repositories/sql_repo.py
from __future__ import annotations

import asyncio
import logging

import aiosqlite

from askstream.history.models import HistoryRecord
from askstream.history.repositories.base import HistoryRepository

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS history (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL,
        question TEXT NOT NULL,
        answer TEXT NOT NULL,
        ts INTEGER NOT NULL
    )
"""


class AsyncSqlHistoryRepo(HistoryRepository):
    """
    SQLite history over one persistent aiosqlite connection.

    Ordering follows the insertion sequence, not ``ts``, so clock skew between
    writers cannot reorder the list.
    """

    def __init__(self, db_path: str = "history.db"):
        self.db_path = db_path
        self._open_lock = asyncio.Lock()
        self._query_lock = asyncio.Lock()
        self._connection: aiosqlite.Connection | None = None

    async def _conn(self) -> aiosqlite.Connection:
        """Open the connection and create the schema on first use."""
        if self._connection is not None:
            return self._connection
        async with self._open_lock:
            if self._connection is None:
                connection = await aiosqlite.connect(self.db_path)
                await connection.execute("PRAGMA journal_mode=WAL")
                await connection.execute("PRAGMA synchronous=NORMAL")
                await connection.execute("PRAGMA busy_timeout=30000")  # ms
                await connection.execute(SCHEMA)
                await connection.commit()
                self._connection = connection
                logger.info(f"Opened history database {self.db_path}")
        return self._connection

    async def append(self, record: HistoryRecord) -> None:
        conn = await self._conn()
        async with self._query_lock:
            await conn.execute(
                "INSERT INTO history (id, question, answer, ts) VALUES (?, ?, ?, ?)",
                (record.id, record.question, record.answer, record.ts),
            )
            await conn.commit()

    async def list(self) -> list[HistoryRecord]:
        conn = await self._conn()
        async with self._query_lock:
            async with conn.execute(
                "SELECT id, question, answer, ts FROM history ORDER BY seq DESC"
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            HistoryRecord(id=row_id, question=question, answer=answer, ts=ts)
            for row_id, question, answer, ts in rows
        ]

    async def clear(self) -> None:
        conn = await self._conn()
        async with self._query_lock:
            await conn.execute("DELETE FROM history")
            await conn.commit()
        logger.info(f"Cleared history database {self.db_path}")

    async def close(self) -> None:
        """Close the connection; the next call reopens it."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> AsyncSqlHistoryRepo:
        await self._conn()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
