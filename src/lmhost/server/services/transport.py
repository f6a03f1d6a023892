"""Uniform chat-completion transport over a provider's OpenAI-compatible endpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping

import httpx

from lmhost.util.errors import ProviderConnectionRefused, TransportError, TransportTimeout
from lmhost.util.providers import ProviderSettings, resolve_base_url
from lmhost.util.utils import _get_env_float

logger = logging.getLogger(__name__)

# Seconds without a byte from the provider before the stream is failed
STREAM_READ_TIMEOUT = _get_env_float("LMHOST_STREAM_TIMEOUT", 300.0)
CONNECT_TIMEOUT = _get_env_float("LMHOST_CONNECT_TIMEOUT", 5.0)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a provider (totals so far)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    context_window: int = 0

    @property
    def used(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def merge(self, other: "TokenUsage") -> "TokenUsage":
        """Combine with a newer report without ever decreasing a count."""
        return TokenUsage(
            prompt_tokens=max(self.prompt_tokens, other.prompt_tokens),
            completion_tokens=max(self.completion_tokens, other.completion_tokens),
            context_window=other.context_window or self.context_window,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "context_window": self.context_window,
        }


@dataclass(frozen=True)
class Chunk:
    """One streamed increment: a text delta and, sometimes, usage so far."""

    delta: str = ""
    usage: TokenUsage | None = None
    finish_reason: str | None = None


def normalize_base_url(base_url: str) -> str:
    """Strip trailing slashes and make sure the path ends in /v1."""
    base = base_url.strip().rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


def _parse_usage(raw: Any) -> TokenUsage | None:
    if not isinstance(raw, dict):
        return None
    try:
        prompt = int(raw.get("prompt_tokens") or 0)
        completion = int(raw.get("completion_tokens") or 0)
        window = int(raw.get("context_window") or 0)
    except (TypeError, ValueError):
        return None
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, context_window=window)


def parse_sse_payload(data: str) -> Chunk:
    """Parse one ``data:`` payload of an OpenAI-style completion stream."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise TransportError("Malformed stream chunk from provider", detail=data[:500]) from e
    if not isinstance(payload, dict):
        raise TransportError("Unexpected stream chunk from provider", detail=data[:500])

    if "error" in payload:
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise TransportError(f"Provider reported an error: {message}", detail=data[:500])

    delta = ""
    finish_reason = None
    choices = payload.get("choices") or []
    if choices and isinstance(choices[0], dict):
        choice = choices[0]
        content = (choice.get("delta") or {}).get("content")
        if isinstance(content, str):
            delta = content
        finish_reason = choice.get("finish_reason")

    return Chunk(delta=delta, usage=_parse_usage(payload.get("usage")), finish_reason=finish_reason)


class ChatTransport:
    """Streams chat completions from one provider endpoint.

    Performs no retries. Closing the iterator returned by ``complete``
    (for example by cancelling the consuming task) closes the connection.
    """

    def __init__(
        self,
        base_url: str,
        read_timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = normalize_base_url(base_url)
        self.read_timeout = read_timeout if read_timeout is not None else STREAM_READ_TIMEOUT
        self.headers = dict(headers or {})
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.read_timeout, connect=CONNECT_TIMEOUT)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport, headers=self.headers)

    def build_payload(self, model_id: str, request: Mapping[str, Any]) -> dict[str, Any]:
        payload = dict(request)
        payload["model"] = model_id
        payload["stream"] = True
        payload.setdefault("stream_options", {"include_usage": True})
        return payload

    async def complete(self, model_id: str, request: Mapping[str, Any]) -> AsyncIterator[Chunk]:
        """Stream a completion as Chunk objects until the provider sends [DONE]."""
        url = f"{self.base_url}/chat/completions"
        payload = self.build_payload(model_id, request)

        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode(errors="replace")
                        raise TransportError(
                            f"Provider returned HTTP {response.status_code} for {model_id}",
                            detail=body[:500],
                        )

                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line or not line.startswith("data:"):
                            continue
                        data = line[5:].strip()
                        if data == "[DONE]":
                            return
                        yield parse_sse_payload(data)
        except httpx.ConnectError as e:
            raise ProviderConnectionRefused(self.base_url, detail=str(e)) from e
        except httpx.TimeoutException as e:
            raise TransportTimeout(f"Provider timed out for {model_id}", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error talking to provider for {model_id}: {e}", detail=str(e)) from e


def build_transport(
    provider_id: str,
    settings: ProviderSettings | None = None,
    read_timeout: float | None = None,
) -> ChatTransport:
    """Create a transport for a provider, resolving its base network address."""
    base_url = resolve_base_url(provider_id, settings)
    logger.debug("Building transport for %s at %s", provider_id, base_url)
    return ChatTransport(base_url, read_timeout=read_timeout)
