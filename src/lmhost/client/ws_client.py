"""WebSocket clients for lmhost conversation streams."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as sync_connect

# Exactly one of these ends every session
TERMINAL_TYPES = ("end", "error", "aborted")


@dataclass
class StreamMessage:
    """A message from the conversation socket."""

    type: str  # session-created, chunk, token-budget, end, error, aborted, started, abort-accepted, pong
    conversation_id: str | None
    session_id: str | None
    seq: int | None
    data: dict[str, Any]

    @property
    def is_terminal(self) -> bool:
        """True for a session's final event. Command error replies carry no session id."""
        return self.type in TERMINAL_TYPES and self.session_id is not None

    @classmethod
    def from_json(cls, raw: str | bytes) -> "StreamMessage":
        msg = json.loads(raw)
        return cls(
            type=msg.get("type", "unknown"),
            conversation_id=msg.get("conversation_id"),
            session_id=msg.get("session_id"),
            seq=msg.get("seq"),
            data=msg.get("data") or {},
        )


def _ws_base(base_url: str) -> str:
    if base_url.startswith("http://"):
        base_url = "ws://" + base_url[7:]
    elif base_url.startswith("https://"):
        base_url = "wss://" + base_url[8:]
    return base_url.rstrip("/")


def _start_message(
    provider_id: str,
    model_id: str,
    request: dict[str, Any],
    context_window: int | None,
) -> str:
    message: dict[str, Any] = {
        "type": "start",
        "provider_id": provider_id,
        "model_id": model_id,
        "request": request,
    }
    if context_window is not None:
        message["context_window"] = context_window
    return json.dumps(message)


def _abort_message(session_id: str | None) -> str:
    message: dict[str, Any] = {"type": "abort"}
    if session_id is not None:
        message["session_id"] = session_id
    return json.dumps(message)


class WSClient:
    """Synchronous WebSocket client for one conversation."""

    def __init__(self, base_url: str = "ws://localhost:8000"):
        """Initialize the WebSocket client.

        Args:
            base_url: Base URL of the lmhost server (http(s) is converted to ws(s))
        """
        self.base_url = _ws_base(base_url)
        self._ws = None
        self._conversation_id = None

    def connect(self, conversation_id: str, since: int | None = None) -> None:
        """Connect to a conversation's event stream.

        Args:
            conversation_id: Conversation to subscribe to
            since: Replay buffered events with a seq greater than this
        """
        url = f"{self.base_url}/api/v1/ws/{conversation_id}"
        if since is not None:
            url += f"?since={since}"
        self._ws = sync_connect(url)
        self._conversation_id = conversation_id

    def disconnect(self) -> None:
        if self._ws:
            self._ws.close()
            self._ws = None
            self._conversation_id = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disconnect()

    def send_ping(self) -> None:
        if self._ws:
            self._ws.send(json.dumps({"type": "ping"}))

    def send_start(
        self,
        provider_id: str,
        model_id: str,
        request: dict[str, Any],
        context_window: int | None = None,
    ) -> None:
        """Ask the server to start a session; the reply is a ``started`` or ``error`` message."""
        if self._ws:
            self._ws.send(_start_message(provider_id, model_id, request, context_window))

    def send_abort(self, session_id: str | None = None) -> None:
        """Abort a session, or the conversation's active session when none is given."""
        if self._ws:
            self._ws.send(_abort_message(session_id))

    def receive(self, timeout: float = 30.0) -> StreamMessage | None:
        """Receive one message.

        Returns:
            StreamMessage or None on timeout or when the socket is closed
        """
        if not self._ws:
            return None
        try:
            return StreamMessage.from_json(self._ws.recv(timeout=timeout))
        except (TimeoutError, ConnectionClosed):
            return None

    def iter_messages(self, timeout: float = 30.0, stop_on_terminal: bool = True):
        """Iterate over messages until a session ends or the socket goes quiet.

        Args:
            timeout: Timeout for each receive call
            stop_on_terminal: Stop after an end, error or aborted session event

        Yields:
            StreamMessage objects
        """
        while True:
            msg = self.receive(timeout=timeout)
            if msg is None:
                return
            yield msg
            if stop_on_terminal and msg.is_terminal:
                return


class AsyncWSClient:
    """Async WebSocket client for one conversation."""

    def __init__(self, base_url: str = "ws://localhost:8000"):
        self.base_url = _ws_base(base_url)
        self._ws = None
        self._conversation_id = None

    async def connect(self, conversation_id: str, since: int | None = None) -> None:
        """Connect to a conversation's event stream."""
        url = f"{self.base_url}/api/v1/ws/{conversation_id}"
        if since is not None:
            url += f"?since={since}"
        self._ws = await websockets.connect(url)
        self._conversation_id = conversation_id

    async def disconnect(self) -> None:
        if self._ws:
            await self._ws.close()
            self._ws = None
            self._conversation_id = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.disconnect()

    async def send_ping(self) -> None:
        if self._ws:
            await self._ws.send(json.dumps({"type": "ping"}))

    async def send_start(
        self,
        provider_id: str,
        model_id: str,
        request: dict[str, Any],
        context_window: int | None = None,
    ) -> None:
        if self._ws:
            await self._ws.send(_start_message(provider_id, model_id, request, context_window))

    async def send_abort(self, session_id: str | None = None) -> None:
        if self._ws:
            await self._ws.send(_abort_message(session_id))

    async def receive(self, timeout: float = 30.0) -> StreamMessage | None:
        if not self._ws:
            return None
        try:
            data = await asyncio.wait_for(self._ws.recv(), timeout=timeout)
        except (asyncio.TimeoutError, ConnectionClosed):
            return None
        return StreamMessage.from_json(data)

    async def iter_messages(self, timeout: float = 30.0, stop_on_terminal: bool = True):
        """Async iterate over messages until a session ends or the socket goes quiet."""
        while True:
            msg = await self.receive(timeout=timeout)
            if msg is None:
                return
            yield msg
            if stop_on_terminal and msg.is_terminal:
                return
