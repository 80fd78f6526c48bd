"""
Session coordinator for streamed asks.

This module handles the business logic for one logical ask:
- Payload construction and validation
- Retry around the streaming executor
- Answer accumulation from `delta` events
- History persistence on success
- A single user-facing failure notification on error

Asks on one coordinator are serialized, so deltas from two asks never
interleave in the notifier. Cancelling the task running ``ask`` is not
converted into a failure result.
"""

from __future__ import annotations

import asyncio
import inspect
import io
import logging
from collections.abc import Awaitable
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from askstream.client.executor import StreamingRequestExecutor, create_http_client
from askstream.client.models import AskRequest, ClientConfig, StreamEvent
from askstream.client.retry import RetryController, RetryPolicy, SleepFunc
from askstream.history.models import HistoryRecord, now_ms
from askstream.history.repositories.base import HistoryRepository
from askstream.logging_utils import AskErrorHandler, log_operation

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Network error, please try again later"


class SessionNotifier(Protocol):
    """UI-side collaborator receiving live events and failures."""

    def on_event(self, event: StreamEvent) -> Awaitable[None] | None:
        """Called for every decoded event, including duplicates from retries."""
        ...

    def on_error(self, message: str) -> Awaitable[None] | None:
        """Called once per failed ask."""
        ...


class AskResult(BaseModel):
    """Outcome reported to the caller of ``ask``."""
    done: bool
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AnswerAccumulator:
    """
    Answer text for one logical ask.

    Uses StringIO instead of repeated string concatenation.
    """

    def __init__(self):
        self._buffer = io.StringIO()

    def append(self, text: str) -> None:
        self._buffer.write(text)

    def get_value(self) -> str:
        return self._buffer.getvalue()

    def clear(self) -> None:
        """Drop text from an aborted attempt."""
        self._buffer.seek(0)
        self._buffer.truncate(0)


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


class SessionCoordinator:
    """
    Entry point for asking a question against the inference service.
    1. Builds the request payload
    2. Streams the answer with retry and backoff
    3. Forwards every event to the notifier while accumulating deltas
    4. Persists the finished answer to history
    """

    def __init__(
        self,
        client_config: ClientConfig,
        history: HistoryRepository,
        notifier: SessionNotifier | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        default_error_message: str = DEFAULT_ERROR_MESSAGE,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.client_config = client_config
        self.history = history
        self.notifier = notifier
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_error_message = default_error_message
        self.executor = StreamingRequestExecutor(client_config)

        # A shared client is used as-is and never closed here; otherwise a
        # fresh client is created for every ask.
        self._shared_client = http_client
        self._sleep = sleep
        self._ask_lock = asyncio.Lock()

    async def ask(self, question: str, session_id: str) -> AskResult:
        """
        Ask one question and report the outcome; never raises on failure.

        Args:
            question: User question
            session_id: Caller-generated id correlating events and history

        Returns:
            AskResult with ``done`` True, or False plus a user-facing message
        """
        async with self._ask_lock:
            try:
                await self._ask(question, session_id)
            except Exception as e:
                message = AskErrorHandler.user_message(e, self.default_error_message)
                await self._notify_error(message)
                return AskResult(done=False, message=message)

            return AskResult(done=True)

    @log_operation("ask")
    async def _ask(self, question: str, session_id: str) -> HistoryRecord:
        payload = AskRequest(question=question, session_id=session_id)
        answer = AnswerAccumulator()
        retry = RetryController(self.retry_policy, sleep=self._sleep)
        client = self._shared_client or create_http_client(self.client_config)

        async def on_event(event: StreamEvent) -> None:
            if event.delta:
                answer.append(event.delta)
            if self.notifier is None:
                return
            try:
                await _maybe_await(self.notifier.on_event(event))
            except Exception as e:
                # Delta already accumulated above
                logger.warning(f"Event notifier failed: {e}")

        async def attempt() -> None:
            # Each attempt restarts the stream, so the answer restarts too
            answer.clear()
            await self.executor.execute(client, payload, on_event)

        try:
            await retry.run(attempt)
        finally:
            if client is not self._shared_client:
                await client.aclose()

        record = HistoryRecord(
            id=session_id,
            question=question,
            answer=answer.get_value(),
            ts=now_ms(),
        )
        await self.history.append(record)
        logger.info(f"Question completed for session {session_id}")
        return record

    async def _notify_error(self, message: str) -> None:
        if self.notifier is None:
            return
        try:
            await _maybe_await(self.notifier.on_error(message))
        except Exception as e:
            logger.warning(f"Error notifier failed: {e}")

    async def get_history(self) -> list[HistoryRecord]:
        """All history records, most recent first; empty on storage failure."""
        try:
            return await self.history.list()
        except Exception as e:
            logger.error(f"Get history failed: {e}")
            return []

    async def clear_history(self) -> bool:
        """Remove all history records; False on storage failure."""
        try:
            await self.history.clear()
            return True
        except Exception as e:
            logger.error(f"Clear history failed: {e}")
            return False

    async def close(self) -> None:
        """Release the history repository."""
        try:
            await self.history.close()
        except Exception as e:
            logger.warning(f"Error closing history repository: {e}")
