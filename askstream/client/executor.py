"""
Streaming request executor for the ask endpoint.

One call to ``stream`` is one attempt: a single streamed POST whose body is
fed to a fresh FrameDecoder. Events are yielded lazily, so the transport is
only read again once the consumer asks for the next event.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

import httpx

from askstream.exceptions import AskClientError, StreamError, TransportError
from askstream.logging_utils import ContextualLogger, operation_context

from .decoder import FrameDecoder
from .models import AskRequest, ClientConfig, StreamEvent

EventSink = Callable[[StreamEvent], Awaitable[None] | None]

HTTP_SUCCESS_MIN = 200
HTTP_SUCCESS_MAX = 299
MAX_ERROR_BODY = 500


def create_http_client(config: ClientConfig) -> httpx.AsyncClient:
    """Build an AsyncClient bound to the configured service origin."""
    return httpx.AsyncClient(
        base_url=config.base_url,
        headers=config.headers(),
        timeout=config.timeout,
    )


class StreamingRequestExecutor:
    """Owns the lifecycle of one streamed request per call."""

    def __init__(self, config: ClientConfig):
        self.config = config
        self._log = ContextualLogger({"component": "executor"})

    async def stream(
        self,
        client: httpx.AsyncClient,
        payload: AskRequest,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """
        Issue one streamed POST and yield decoded events in arrival order.

        Completion is either an event with ``finish`` set (yielded, then the
        response is closed) or transport EOF without one.

        Args:
            client: HTTP client to send the request with
            payload: Request body
            headers: Per-call header overrides
            timeout: Per-call timeout override in seconds

        Raises:
            TransportError: Connection, timeout, invalid URL or non-success status
            StreamError: Stream state errors and any other unexpected failure
        """
        request_headers = {**self.config.headers(), **(headers or {})}
        request_timeout = self.config.timeout if timeout is None else timeout
        decoder = FrameDecoder(self._log.bind(session_id=payload.session_id))
        finished = False

        async with operation_context(
            "stream_attempt",
            context={"session_id": payload.session_id},
        ) as log:
            try:
                async with client.stream(
                    "POST",
                    self.config.endpoint,
                    json=payload.to_payload(),
                    headers=request_headers,
                    timeout=request_timeout,
                ) as response:
                    await self._check_status(response)

                    async for chunk in response.aiter_bytes():
                        for event in decoder.feed(chunk):
                            yield event
                            if event.finish:
                                finished = True
                                break
                        if finished:
                            break

                    decoder.flush()

            except AskClientError:
                raise
            except httpx.HTTPError as e:
                raise TransportError(f"HTTP error: {e!s}") from e
            except httpx.InvalidURL as e:
                raise TransportError(f"Invalid request URL: {e!s}") from e
            except httpx.StreamError as e:
                raise StreamError(f"Stream error: {e!s}") from e
            except Exception as e:
                raise StreamError(f"Unexpected stream failure: {e!s}") from e

            if not finished:
                log.warning(
                    "Stream ended without finish marker",
                    **decoder.get_stats(),
                )

    async def execute(
        self,
        client: httpx.AsyncClient,
        payload: AskRequest,
        on_event: EventSink,
        **overrides: Any,
    ) -> None:
        """
        Run one attempt, handing each event to ``on_event`` before reading on.

        ``on_event`` may be a plain function or a coroutine function; an
        awaitable result is awaited before the next transport read.
        """
        async with aclosing(self.stream(client, payload, **overrides)) as events:
            async for event in events:
                result = on_event(event)
                if inspect.isawaitable(result):
                    await result

    @staticmethod
    async def _check_status(response: httpx.Response) -> None:
        """Raise TransportError for anything outside 2xx."""
        if HTTP_SUCCESS_MIN <= response.status_code <= HTTP_SUCCESS_MAX:
            return
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")[:MAX_ERROR_BODY]
        raise TransportError(
            f"Ask request failed with status {response.status_code}",
            status_code=response.status_code,
            response_text=text,
        )
