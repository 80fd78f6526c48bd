#!/usr/bin/env python3
"""
Tests for the streaming request executor against a mocked transport.
"""

import json

import httpx
import pytest

from askstream.client.executor import StreamingRequestExecutor
from askstream.client.models import AskRequest, ClientConfig
from askstream.exceptions import StreamError, TransportError

BASE_URL = "http://ask.test"


def sse_body(chunks, error=None, log=None):
    """Async body yielding ``chunks`` and optionally failing afterwards."""
    async def body():
        for index, chunk in enumerate(chunks):
            if log is not None:
                log.append(f"read-{index}")
            yield chunk
        if error is not None:
            raise error
    return body()


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=BASE_URL
    )


@pytest.fixture
def payload():
    return AskRequest(question="What is up?", session_id="s-1")


@pytest.fixture
def executor():
    return StreamingRequestExecutor(
        ClientConfig(base_url=BASE_URL, auth_token="tok", api_key="key")
    )


class TestRequest:
    """Shape of the outgoing request."""

    @pytest.mark.asyncio
    async def test_posts_payload_with_headers(self, executor, payload):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["headers"] = request.headers
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200, content=sse_body([b'data: {"finish":true}\n']))

        async with make_client(handler) as client:
            events = [e async for e in executor.stream(client, payload)]

        assert [e.finish for e in events] == [True]
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/ask"
        assert seen["body"] == {"question": "What is up?", "sessionId": "s-1"}
        assert seen["headers"]["Authorization"] == "Bearer tok"
        assert seen["headers"]["X-API-Key"] == "key"
        assert seen["headers"]["Accept"] == "text/event-stream"
        assert seen["timeout"]["read"] == 60.0

    @pytest.mark.asyncio
    async def test_per_call_overrides(self, executor, payload):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200, content=sse_body([b'data: {"finish":true}\n']))

        async with make_client(handler) as client:
            await executor.execute(
                client, payload, lambda event: None,
                headers={"X-Trace": "abc"}, timeout=5.0,
            )

        assert seen["headers"]["X-Trace"] == "abc"
        assert seen["headers"]["Authorization"] == "Bearer tok"
        assert seen["timeout"]["read"] == 5.0


class TestCompletion:
    """Logical completion of a stream."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body([
                b'data: {"delta":"Hel"}\ndata: {"del',
                b'ta":"lo"}\n',
                b'data: {"finish":true}\n',
            ]))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        assert [e.to_dict() for e in received] == [
            {"delta": "Hel"}, {"delta": "lo"}, {"finish": True}
        ]

    @pytest.mark.asyncio
    async def test_finish_stops_reading_before_transport_closes(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body(
                [b'data: {"delta":"a"}\n', b'data: {"finish":true}\n',
                 b'data: {"delta":"late"}\n'],
                error=httpx.ReadError("connection reset"),
            ))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        assert [e.delta for e in received] == ["a", None]
        assert received[-1].finish is True

    @pytest.mark.asyncio
    async def test_events_after_finish_in_same_read_are_dropped(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body([
                b'data: {"delta":"a"}\ndata: {"finish":true}\ndata: {"delta":"b"}\n',
            ]))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        assert [e.to_dict() for e in received] == [{"delta": "a"}, {"finish": True}]

    @pytest.mark.asyncio
    async def test_eof_without_finish_is_success(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body([
                b'data: {"delta":"a"}\n', b'data: {"delta":"b"}\ndata: {"delta":"c',
            ]))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        # The unterminated trailing fragment is discarded
        assert [e.delta for e in received] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_stream_is_success(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body([]))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        assert received == []


class TestBackPressure:
    """The next read waits for the sink."""

    @pytest.mark.asyncio
    async def test_sync_sink_runs_before_next_read(self, executor, payload):
        log = []

        def handler(request):
            return httpx.Response(200, content=sse_body([
                b'data: {"delta":"a"}\n',
                b'data: {"delta":"b"}\n',
                b'data: {"finish":true}\n',
            ], log=log))

        async with make_client(handler) as client:
            await executor.execute(
                client, payload, lambda e: log.append(f"event-{e.delta or 'finish'}")
            )

        assert log == [
            "read-0", "event-a", "read-1", "event-b", "read-2", "event-finish"
        ]

    @pytest.mark.asyncio
    async def test_async_sink_is_awaited_before_next_read(self, executor, payload):
        log = []

        def handler(request):
            return httpx.Response(200, content=sse_body([
                b'data: {"delta":"a"}\n',
                b'data: {"finish":true}\n',
            ], log=log))

        async def sink(event):
            log.append("sink-start")
            log.append("sink-end")

        async with make_client(handler) as client:
            await executor.execute(client, payload, sink)

        assert log == [
            "read-0", "sink-start", "sink-end", "read-1", "sink-start", "sink-end"
        ]


class TestFailures:
    """Transport and stream failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404, 429, 500, 503])
    async def test_non_success_status_raises_transport_error(
        self, executor, payload, status
    ):
        def handler(request):
            return httpx.Response(status, text="service says no")

        received = []
        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await executor.execute(client, payload, received.append)

        assert exc_info.value.status_code == status
        assert exc_info.value.response_text == "service says no"
        assert received == []

    @pytest.mark.asyncio
    async def test_connect_error_raises_transport_error(self, executor, payload):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await executor.execute(client, payload, lambda e: None)

        assert exc_info.value.status_code is None
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self, executor, payload):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError):
                await executor.execute(client, payload, lambda e: None)

    @pytest.mark.asyncio
    async def test_mid_stream_error_keeps_delivered_events(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body(
                [b'data: {"delta":"partial"}\n'],
                error=httpx.ReadError("connection reset"),
            ))

        received = []
        async with make_client(handler) as client:
            with pytest.raises(TransportError):
                await executor.execute(client, payload, received.append)

        assert [e.delta for e in received] == ["partial"]

    @pytest.mark.asyncio
    async def test_consumed_stream_raises_stream_error(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body(
                [b'data: {"delta":"a"}\n'],
                error=httpx.StreamConsumed(),
            ))

        async with make_client(handler) as client:
            with pytest.raises(StreamError):
                await executor.execute(client, payload, lambda e: None)

    @pytest.mark.asyncio
    async def test_malformed_frames_do_not_fail_the_attempt(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body([
                b"data: {oops\n", b'data: {"delta":"ok"}\n', b'data: {"finish":true}\n'
            ]))

        received = []
        async with make_client(handler) as client:
            await executor.execute(client, payload, received.append)

        assert [e.delta for e in received] == ["ok", None]

    @pytest.mark.asyncio
    async def test_invalid_url_raises_transport_error(self, executor, payload):
        def handler(request):
            raise httpx.InvalidURL("Invalid port: 'abc'")

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await executor.execute(client, payload, lambda e: None)

        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)

    @pytest.mark.asyncio
    async def test_unexpected_body_failure_raises_stream_error(self, executor, payload):
        def handler(request):
            return httpx.Response(200, content=sse_body(
                [b'data: {"delta":"a"}\n'],
                error=KeyError("chunk"),
            ))

        received = []
        async with make_client(handler) as client:
            with pytest.raises(StreamError) as exc_info:
                await executor.execute(client, payload, received.append)

        assert isinstance(exc_info.value.__cause__, KeyError)
        assert [e.delta for e in received] == ["a"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
