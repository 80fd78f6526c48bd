"""
Bounded-attempt retry with exponential backoff.

Delay after failed attempt ``n`` (1-indexed), before attempt ``n + 1``:
``min(initial_delay * 2**n, max_delay)``. Nothing follows the final attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from askstream.exceptions import ExhaustedRetriesError
from askstream.logging_utils import AskErrorHandler, ContextualLogger

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget and backoff schedule.

    ``classify_errors`` stops early on failures that cannot succeed on a
    later attempt (e.g. HTTP 400/401/403/404). Set it to False for the
    legacy behavior of retrying every failure.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 8.0
    classify_errors: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after ``attempt`` failed."""
        return min(self.initial_delay * (2 ** attempt), self.max_delay)


@dataclass
class AttemptState:
    """Progress of the current logical request."""
    attempt_number: int = 0
    last_error: BaseException | None = None


class RetryController:
    """Runs an operation until it succeeds or the attempt budget is spent."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.state = AttemptState()
        self._log = ContextualLogger({"component": "retry"})

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Call ``operation`` once per attempt and return its first success.

        Args:
            operation: Zero-argument callable producing a fresh awaitable

        Returns:
            Result of the first successful attempt

        Raises:
            ExhaustedRetriesError: Every attempt failed, or a failure was
                classified as non-retryable
        """
        self.state = AttemptState()
        max_attempts = self.policy.max_attempts

        while self.state.attempt_number < max_attempts:
            self.state.attempt_number += 1
            attempt = self.state.attempt_number
            self._log.info("Ask attempt", attempt=attempt, max_attempts=max_attempts)

            try:
                return await operation()
            except Exception as e:
                self.state.last_error = e
                category, retryable = AskErrorHandler.classify_error(e)

                if self.policy.classify_errors and not retryable:
                    self._log.error(
                        "Ask failed with non-retryable error",
                        attempt=attempt,
                        error_category=category,
                        error=str(e),
                    )
                    break

                if attempt >= max_attempts:
                    self._log.error(
                        "Ask failed after all attempts",
                        attempts=attempt,
                        error_category=category,
                        error=str(e),
                    )
                    break

                delay = self.policy.backoff_delay(attempt)
                self._log.warning(
                    "Ask retrying after delay",
                    attempt=attempt,
                    delay=delay,
                    error_category=category,
                    error=str(e),
                )
                await self._sleep(delay)

        raise ExhaustedRetriesError(
            f"Request failed after {self.state.attempt_number} attempt(s)",
            last_error=self.state.last_error,
            attempts=self.state.attempt_number,
        ) from self.state.last_error
