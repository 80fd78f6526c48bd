"""
Resilient streaming client for the ask endpoint.

This package provides:
- Incremental `data:` frame decoding tolerant of split reads
- One-attempt streamed request execution with back-pressure
- Bounded retry with exponential backoff and error classification
"""

from __future__ import annotations

from .decoder import FrameDecoder
from .executor import StreamingRequestExecutor, create_http_client
from .models import AskRequest, ClientConfig, StreamEvent
from .retry import AttemptState, RetryController, RetryPolicy

__all__ = [
    "AskRequest",
    "AttemptState",
    "ClientConfig",
    "FrameDecoder",
    "RetryController",
    "RetryPolicy",
    "StreamEvent",
    "StreamingRequestExecutor",
    "create_http_client",
]
