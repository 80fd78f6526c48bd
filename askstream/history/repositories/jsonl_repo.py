#!/usr/bin/env python3
"""
JSONL-backed history storage.

Records are appended one per line in completion order, so the newest record
is the last line; ``list()`` reverses that. Writes are serialized across
processes with a lock file next to the history file.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

import aiofiles
from filelock import FileLock, Timeout
from pydantic import ValidationError

from askstream.history.models import HistoryRecord
from askstream.history.repositories.base import HistoryRepository

logger = logging.getLogger(__name__)


@asynccontextmanager
async def async_file_lock(
    file_path: str, timeout: float = 30.0
) -> AsyncGenerator[None]:
    """
    Hold ``<file_path>.lock`` across processes for the duration of the block.

    FileLock blocks, so acquire and release run in the default executor. They
    may land on different worker threads, hence ``thread_local=False``.

    Raises:
        TimeoutError: The lock was not acquired within ``timeout`` seconds
    """
    file_lock = FileLock(f"{file_path}.lock", timeout=timeout, thread_local=False)
    loop = asyncio.get_running_loop()

    try:
        await loop.run_in_executor(None, file_lock.acquire)
    except Timeout as e:
        raise TimeoutError(f"Could not lock {file_path} within {timeout}s") from e

    try:
        yield
    finally:
        # A stale lock file is harmless; the OS drops the lock with the fd
        with suppress(OSError):
            await loop.run_in_executor(None, file_lock.release)


class AsyncJsonlHistoryRepo(HistoryRepository):
    """
    Async file I/O history store with cross-process write locking.

    - aiofiles for non-blocking reads and appends
    - FileLock around every write
    - Lazy load on first access
    - Optional fsync for crash durability
    """

    def __init__(self, path: str = "history.jsonl", fsync_enabled: bool = False):
        self.path = path
        self.fsync_enabled = fsync_enabled
        self._lock = asyncio.Lock()
        self._records: list[HistoryRecord] = []
        self._loaded = False

    async def _ensure_loaded(self) -> None:
        """Load records from disk once. Must be called with lock held."""
        if self._loaded:
            return
        await self._load_async()
        self._loaded = True

    async def _load_async(self) -> None:
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                async for file_line in f:
                    stripped_line = file_line.strip()
                    if not stripped_line:
                        continue

                    try:
                        record = HistoryRecord.model_validate(
                            json.loads(stripped_line)
                        )
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning(f"Skipping invalid line in {self.path}: {e}")
                        continue

                    self._records.insert(0, record)

        except FileNotFoundError:
            # No history written yet
            pass

    async def _append_async(self, record: HistoryRecord) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        async with (
            async_file_lock(self.path),
            aiofiles.open(self.path, "a", encoding="utf-8") as f,
        ):
            data = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
            await f.write(data + "\n")
            await f.flush()
            if self.fsync_enabled:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, os.fsync, f.fileno())

    async def append(self, record: HistoryRecord) -> None:
        async with self._lock:
            await self._ensure_loaded()
            await self._append_async(record)
            self._records.insert(0, record)

    async def list(self) -> list[HistoryRecord]:
        async with self._lock:
            await self._ensure_loaded()
            return list(self._records)

    async def clear(self) -> None:
        async with self._lock:
            if os.path.exists(self.path):
                async with (
                    async_file_lock(self.path),
                    aiofiles.open(self.path, "w", encoding="utf-8") as f,
                ):
                    await f.write("")
            self._records.clear()
            self._loaded = True
            logger.info(f"Cleared history file {self.path}")

    async def close(self) -> None:
        pass
