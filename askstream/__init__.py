"""
Resilient streaming client for a remote ask service.

This package provides:
- Incremental decoding of `data:`-prefixed event streams
- Streamed request execution with retry and exponential backoff
- A session coordinator that accumulates answers and records history
- Pluggable history storage (memory, JSONL, SQLite)
"""

from __future__ import annotations

from .client import (
    AskRequest,
    ClientConfig,
    FrameDecoder,
    RetryController,
    RetryPolicy,
    StreamEvent,
    StreamingRequestExecutor,
)
from .exceptions import (
    AskClientError,
    ExhaustedRetriesError,
    FrameParseWarning,
    StreamError,
    TransportError,
)
from .history import HistoryRecord, HistoryRepository
from .session import AskResult, SessionCoordinator, SessionNotifier

__all__ = [
    "AskClientError",
    "AskRequest",
    "AskResult",
    "ClientConfig",
    "ExhaustedRetriesError",
    "FrameDecoder",
    "FrameParseWarning",
    "HistoryRecord",
    "HistoryRepository",
    "RetryController",
    "RetryPolicy",
    "SessionCoordinator",
    "SessionNotifier",
    "StreamError",
    "StreamEvent",
    "StreamingRequestExecutor",
    "TransportError",
]
