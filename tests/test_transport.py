"""Tests for the streaming chat-completion transport."""

import json

import httpx
import pytest

from lmhost.server.services.transport import (
    ChatTransport,
    TokenUsage,
    build_transport,
    normalize_base_url,
    parse_sse_payload,
)
from lmhost.util.errors import ProviderConnectionRefused, TransportError, TransportTimeout
from lmhost.util.providers import ProviderSettings


def sse_body(*payloads, done=True) -> bytes:
    lines = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def delta(text, finish=None):
    return {"choices": [{"delta": {"content": text}, "finish_reason": finish}]}


async def collect(transport, request=None):
    return [c async for c in transport.complete("llama3", request or {"messages": []})]


class TestHelpers:
    def test_normalize_base_url(self):
        assert normalize_base_url("http://localhost:11434/") == "http://localhost:11434/v1"
        assert normalize_base_url("http://localhost:1234/v1") == "http://localhost:1234/v1"

    def test_usage_merge_never_decreases(self):
        first = TokenUsage(prompt_tokens=10, completion_tokens=5, context_window=4096)
        merged = first.merge(TokenUsage(prompt_tokens=10, completion_tokens=3))
        assert merged.completion_tokens == 5
        assert merged.context_window == 4096
        assert merged.used == 15

    def test_parse_payload_with_usage(self):
        chunk = parse_sse_payload(json.dumps({
            "choices": [],
            "usage": {"prompt_tokens": 12, "completion_tokens": 30},
        }))
        assert chunk.delta == ""
        assert chunk.usage == TokenUsage(prompt_tokens=12, completion_tokens=30)

    def test_parse_payload_error_object(self):
        with pytest.raises(TransportError) as exc:
            parse_sse_payload(json.dumps({"error": {"message": "model not loaded"}}))
        assert "model not loaded" in exc.value.message

    def test_parse_payload_not_object(self):
        with pytest.raises(TransportError):
            parse_sse_payload("[1, 2]")


class TestChatTransport:
    @pytest.mark.asyncio
    async def test_streams_deltas_and_usage(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            body = sse_body(
                delta("Hel"),
                delta("lo"),
                {"choices": [{"delta": {}, "finish_reason": "stop"}],
                 "usage": {"prompt_tokens": 4, "completion_tokens": 2}},
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        transport = ChatTransport("http://localhost:11434", transport=httpx.MockTransport(handler))
        chunks = await collect(transport, {"messages": [{"role": "user", "content": "hi"}]})

        assert [c.delta for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].finish_reason == "stop"
        assert chunks[-1].usage.used == 6
        assert seen["url"] == "http://localhost:11434/v1/chat/completions"
        assert seen["body"]["model"] == "llama3"
        assert seen["body"]["stream"] is True
        assert seen["body"]["stream_options"] == {"include_usage": True}

    @pytest.mark.asyncio
    async def test_ignores_comments_and_blank_lines(self):
        body = b": keep-alive\n\n" + sse_body(delta("x"))

        def handler(request):
            return httpx.Response(200, content=body)

        chunks = await collect(ChatTransport("http://h", transport=httpx.MockTransport(handler)))
        assert [c.delta for c in chunks] == ["x"]

    @pytest.mark.asyncio
    async def test_stops_at_done(self):
        body = sse_body(delta("a")) + b"data: " + json.dumps(delta("after")).encode() + b"\n\n"

        def handler(request):
            return httpx.Response(200, content=body)

        chunks = await collect(ChatTransport("http://h", transport=httpx.MockTransport(handler)))
        assert [c.delta for c in chunks] == ["a"]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(500, text="model crashed")

        with pytest.raises(TransportError) as exc:
            await collect(ChatTransport("http://h", transport=httpx.MockTransport(handler)))
        assert "HTTP 500" in exc.value.message
        assert exc.value.detail == "model crashed"

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(ProviderConnectionRefused) as exc:
            await collect(ChatTransport("http://localhost:1234", transport=httpx.MockTransport(handler)))
        assert exc.value.kind == "connection_refused"
        assert "localhost:1234" in exc.value.message

    @pytest.mark.asyncio
    async def test_read_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportTimeout) as exc:
            await collect(ChatTransport("http://h", transport=httpx.MockTransport(handler)))
        assert exc.value.kind == "timeout"

    @pytest.mark.asyncio
    async def test_malformed_chunk(self):
        def handler(request):
            return httpx.Response(200, content=b"data: {broken\n\n")

        with pytest.raises(TransportError) as exc:
            await collect(ChatTransport("http://h", transport=httpx.MockTransport(handler)))
        assert exc.value.kind == "transport_error"
        assert exc.value.detail == "{broken"


class TestBuildTransport:
    def test_uses_resolved_endpoint(self):
        transport = build_transport("lmstudio", ProviderSettings(endpoint="http://gpu:1234"), read_timeout=12)
        assert transport.base_url == "http://gpu:1234/v1"
        assert transport.read_timeout == 12

    def test_default_endpoint(self):
        assert build_transport("ollama").base_url == "http://localhost:11434/v1"
