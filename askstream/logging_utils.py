"""
Logging and error classification shared by the ask client.

structlog is configured once at import and routed through stdlib logging, so
`setup_logging` controls the level for both. Errors are sorted into a
category plus a retryable flag, which the retry loop and the attempt logs
both use.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from askstream.exceptions import (
    ExhaustedRetriesError,
    StreamError,
    TransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Route stdlib and structlog output through the configured level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


class AskErrorHandler:
    """Centralized error classification with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> tuple[str, bool]:
        """
        Classify an error and decide whether it is worth another attempt.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (error_category, retryable)
        """
        if isinstance(error, ExhaustedRetriesError):
            return "exhausted_retries", False
        if isinstance(error, TransportError):
            if error.status_code is not None:
                return "http_status_error", error.retryable
            return "transport_error", True
        if isinstance(error, StreamError):
            return "stream_error", True
        if isinstance(error, ValidationError):
            return "validation_error", False
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return "timeout_error", True
        if isinstance(error, httpx.TransportError | ConnectionError | OSError):
            return "connection_error", True
        return "unknown_error", True

    @staticmethod
    def user_message(error: BaseException, default: str) -> str:
        """
        Pick the text shown to the user for a failed ask.

        Args:
            error: Terminal error of the logical request
            default: Generic message used when nothing more specific exists

        Returns:
            Non-empty user-facing message
        """
        if isinstance(error, ExhaustedRetriesError):
            return error.user_message(default)
        if isinstance(error, ValidationError):
            return "Invalid request: question and session id are required"
        text = str(error).strip()
        return text or default


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Wrap a coroutine function with start/finish/failure log lines.

    Args:
        operation: Name logged as ``operation``
        log_args: Include positional (minus ``self``) and keyword arguments
        log_result: Include the return value on success
        log_timing: Include ``duration_ms``
        context: Extra fields bound to every line
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            op_log = logger.bind(
                operation=operation, function=func.__name__, **(context or {})
            )
            if log_args:
                op_log.info("Operation started", args=args[1:], kwargs=kwargs)
            else:
                op_log.info("Operation started")
            start = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                fields: dict[str, Any] = {"error_type": type(e).__name__}
                if log_timing:
                    fields["duration_ms"] = _elapsed_ms(start)
                op_log.error("Operation failed", error_message=str(e), **fields)
                raise

            fields = {"result": result} if log_result else {}
            if log_timing:
                fields["duration_ms"] = _elapsed_ms(start)
            op_log.info("Operation completed", **fields)
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
) -> AsyncIterator[Any]:
    """
    Time a block and log its failure with retry classification.

    Yields the bound structlog logger so the block can add its own lines.
    """
    op_log = logger.bind(operation=operation, **(context or {}))
    op_log.debug("Operation started")
    start = time.perf_counter()

    try:
        yield op_log
    except Exception as e:
        category, retryable = AskErrorHandler.classify_error(e)
        fields: dict[str, Any] = {"duration_ms": _elapsed_ms(start)} if log_timing else {}
        op_log.warning(
            "Operation failed",
            error_type=type(e).__name__,
            error_category=category,
            retryable=retryable,
            error_message=str(e),
            **fields,
        )
        raise

    if log_timing:
        op_log.debug("Operation completed", duration_ms=_elapsed_ms(start))
    else:
        op_log.debug("Operation completed")


class ContextualLogger:
    """Structlog logger carrying fixed fields (component, session id)."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = dict(base_context or {})
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Return a new logger with ``context`` added; self is unchanged."""
        return ContextualLogger({**self.base_context, **context})

    def _emit(self, level: str, message: str, context: dict[str, Any]) -> None:
        getattr(self._logger, level)(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._emit("debug", message, context)

    def info(self, message: str, **context: Any) -> None:
        self._emit("info", message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._emit("warning", message, context)

    def error(self, message: str, **context: Any) -> None:
        self._emit("error", message, context)
