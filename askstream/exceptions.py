"""
Error taxonomy for the streaming ask client.

This module provides the exception types raised while talking to the
inference service:
- Transport failures with HTTP status context
- Decode-loop failures that are not tied to a single frame
- Soft warnings for individual malformed frames
- Terminal failure once the retry budget is spent
"""

from __future__ import annotations

# 4xx statuses that can succeed on a later attempt
RETRYABLE_CLIENT_STATUSES = frozenset({408, 425, 429})


class AskClientError(Exception):
    """Base error for the ask client."""


class TransportError(AskClientError):
    """Connection, timeout or non-success status error for one attempt."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text

    @property
    def retryable(self) -> bool:
        """Whether another attempt could plausibly succeed."""
        if self.status_code is None:
            return True
        if self.status_code >= 500:
            return True
        return self.status_code in RETRYABLE_CLIENT_STATUSES


class StreamError(AskClientError):
    """Failure of the decode loop itself, not of a single frame."""


class FrameParseWarning(UserWarning):
    """A single `data:` frame whose payload could not be decoded."""

    def __init__(self, message: str, payload: str):
        super().__init__(message)
        self.payload = payload


class ExhaustedRetriesError(AskClientError):
    """All attempts failed, or a failure was classified as non-retryable."""

    def __init__(
        self,
        message: str,
        last_error: BaseException | None = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts

    def user_message(self, default: str) -> str:
        """Most specific user-facing text available, else ``default``."""
        if self.last_error is not None:
            text = str(self.last_error).strip()
            if text:
                return text
        return default
