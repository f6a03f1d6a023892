"""Relay between the session manager and the UI process.

Session events are fanned out to per-conversation subscriber queues, each
with a single producer (the bridge) and a single consumer (one boundary
connection), so events for a conversation arrive in the order produced.
Inbound ``start`` / ``abort`` commands are translated into session manager
calls. No business logic lives here.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict, deque
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from lmhost.server.api.schemas.streaming import AbortCommand, StartCommand, parse_command
from lmhost.util.errors import LMHostError, UnknownSession

from .session_manager import SessionEvent

if TYPE_CHECKING:
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

HISTORY_SIZE = 256
MAX_CONVERSATIONS = 512


class Subscription:
    """One consumer's ordered view of a conversation's events."""

    def __init__(self, bridge: "EventBridge", conversation_id: str):
        self._bridge = bridge
        self.conversation_id = conversation_id
        self._queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self.closed = False

    def put(self, event: SessionEvent | None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def get(self, timeout: float | None = None) -> SessionEvent | None:
        """Next event, or None on timeout or once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bridge._unsubscribe(self)
            self.put(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> SessionEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class EventBridge:
    """Typed event channel per conversation.

    History and sequence counters are kept for at most ``max_conversations``
    conversations. When over the limit, the least recently published
    conversations without a subscriber are dropped; a dropped conversation
    starts again from seq 1.
    """

    def __init__(self, history_size: int = HISTORY_SIZE, max_conversations: int = MAX_CONVERSATIONS):
        self._subscribers: dict[str, list[Subscription]] = {}
        # Ordered least to most recently published
        self._history: OrderedDict[str, deque[SessionEvent]] = OrderedDict()
        self._seq: dict[str, int] = {}
        self._history_size = history_size
        self._max_conversations = max_conversations
        self._lock = threading.Lock()

    def publish(self, event: SessionEvent) -> SessionEvent:
        """Stamp the per-conversation sequence number and fan the event out."""
        with self._lock:
            conversation_id = event.conversation_id
            seq = self._seq.get(conversation_id, 0) + 1
            self._seq[conversation_id] = seq
            event = replace(event, seq=seq)
            history = self._history.get(conversation_id)
            if history is None:
                history = self._history[conversation_id] = deque(maxlen=self._history_size)
            else:
                self._history.move_to_end(conversation_id)
            history.append(event)
            self._evict()
            subscribers = list(self._subscribers.get(conversation_id, ()))

        for subscription in subscribers:
            subscription.put(event)
        return event

    def _evict(self) -> None:
        """Drop idle conversations beyond the limit. Caller holds the lock."""
        excess = len(self._history) - self._max_conversations
        if excess <= 0:
            return
        for conversation_id in list(self._history):
            if excess <= 0:
                break
            if conversation_id in self._subscribers:
                continue
            del self._history[conversation_id]
            self._seq.pop(conversation_id, None)
            excess -= 1
        if excess > 0:
            logger.debug("Event history over limit by %d subscribed conversation(s)", excess)

    def tracked_conversations(self) -> int:
        with self._lock:
            return len(self._history)

    def subscribe(self, conversation_id: str, since_seq: int | None = None) -> Subscription:
        """Subscribe to a conversation.

        With ``since_seq``, buffered events newer than that sequence number
        are replayed first so a reconnecting client can catch up.
        Must be called from a running event loop.
        """
        subscription = Subscription(self, conversation_id)
        with self._lock:
            self._subscribers.setdefault(conversation_id, []).append(subscription)
            if since_seq is not None:
                for event in self._history.get(conversation_id, ()):
                    if event.seq > since_seq:
                        subscription.put(event)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.conversation_id)
            if subscribers and subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.conversation_id, None)

    def subscriber_count(self, conversation_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(conversation_id, ()))

    def latest_seq(self, conversation_id: str) -> int:
        with self._lock:
            return self._seq.get(conversation_id, 0)

    def handle_command(
        self,
        message: dict[str, Any],
        conversation_id: str | None = None,
        manager: "SessionManager | None" = None,
    ) -> dict[str, Any]:
        """Translate one boundary command into a session manager call.

        Must be called from the event loop that runs the sessions.

        Returns the reply message for the caller. Errors become ``error``
        replies rather than exceptions.
        """
        if manager is None:
            from .session_manager import get_session_manager

            manager = get_session_manager()

        msg_type = message.get("type") if isinstance(message, dict) else None
        if msg_type == "ping":
            return {"type": "pong", "conversation_id": conversation_id}

        try:
            command = parse_command(message, conversation_id)
        except (ValidationError, ValueError) as e:
            return {
                "type": "error",
                "conversation_id": conversation_id,
                "data": {"reason": "invalid_command", "message": str(e)},
            }

        try:
            if isinstance(command, StartCommand):
                session_id = manager.start(
                    command.conversation_id,
                    command.provider_id,
                    command.model_id,
                    command.request,
                    context_window=command.context_window,
                )
                return {
                    "type": "started",
                    "conversation_id": command.conversation_id,
                    "data": {"session_id": session_id},
                }

            session_id = self._resolve_abort_target(command, conversation_id, manager)
            manager.abort(session_id)
            return {
                "type": "abort-accepted",
                "conversation_id": conversation_id,
                "data": {"session_id": session_id},
            }
        except LMHostError as e:
            logger.info("Rejected %s command: %s", msg_type, e.message)
            return {
                "type": "error",
                "conversation_id": conversation_id,
                "data": {"reason": e.kind, "message": e.message},
            }

    @staticmethod
    def _resolve_abort_target(
        command: AbortCommand,
        conversation_id: str | None,
        manager: "SessionManager",
    ) -> str:
        """Session to abort; a channel may only abort its own conversation's sessions."""
        if command.session_id is None:
            active = manager.get_active_session(conversation_id) if conversation_id else None
            if active is None:
                raise UnknownSession(f"active:{conversation_id}")
            return active.session_id

        if conversation_id is not None:
            session = manager.get_session(command.session_id)
            if session is not None and session.conversation_id != conversation_id:
                raise UnknownSession(command.session_id)
        return command.session_id


# Global bridge instance
_event_bridge: EventBridge | None = None


def get_event_bridge() -> EventBridge:
    global _event_bridge
    if _event_bridge is None:
        _event_bridge = EventBridge()
    return _event_bridge


def reset_event_bridge() -> None:
    """Reset the global bridge (for testing)."""
    global _event_bridge
    _event_bridge = None
