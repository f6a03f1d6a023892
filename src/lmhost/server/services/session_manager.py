"""Streaming session management: one active stream per conversation."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Mapping, Protocol

from lmhost.util.errors import (
    ConversationBusy,
    LMHostError,
    TransportError,
    UnknownSession,
)
from lmhost.util.providers import describe

from .transport import Chunk, TokenUsage, build_transport

logger = logging.getLogger(__name__)

NEAR_LIMIT_PERCENT = 80.0
AT_LIMIT_PERCENT = 95.0


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ABORTED = "aborted"
    COMPLETED = "completed"
    FAILED = "failed"


class EventType(str, Enum):
    SESSION_CREATED = "session-created"
    CHUNK = "chunk"
    TOKEN_BUDGET = "token-budget"
    END = "end"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SessionEvent:
    """An event produced by a session, relayed to the UI keyed by conversation."""

    type: EventType
    conversation_id: str
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    seq: int = 0

    def to_message(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conversation_id": self.conversation_id,
            "session_id": self.session_id,
            "seq": self.seq,
            "data": self.data,
        }


class CompletionTransport(Protocol):
    def complete(self, model_id: str, request: Mapping[str, Any]) -> AsyncIterator[Chunk]: ...


TransportFactory = Callable[[str], CompletionTransport]
EventSink = Callable[[SessionEvent], None]


@dataclass
class Session:
    """One in-flight streaming exchange tied to a conversation."""

    conversation_id: str
    provider_id: str
    model_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SessionStatus = SessionStatus.ACTIVE
    started_at: float = field(default_factory=time.monotonic)
    usage: TokenUsage = field(default_factory=TokenUsage)
    cancel_handle: asyncio.Task | None = field(default=None, repr=False)
    chunks: int = 0

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


def budget_payload(usage: TokenUsage) -> dict[str, Any]:
    """Token budget event data, with the UI's warning thresholds applied."""
    used = usage.used
    total = usage.context_window
    percentage = (used / total) * 100 if total else 0.0
    if percentage > AT_LIMIT_PERCENT:
        level = "at_limit"
    elif percentage > NEAR_LIMIT_PERCENT:
        level = "near_limit"
    else:
        level = "ok"
    return {
        "used": used,
        "total": total,
        "percentage": round(percentage, 1),
        "level": level,
    }


class SessionManager:
    """Owns the active-session table and one consumer task per session.

    Creation, status transition and deregistration each happen under a
    single lock, and events are emitted while holding it, so a late chunk
    can never be emitted after a session's terminal event.
    """

    def __init__(
        self,
        transport_factory: TransportFactory | None = None,
        emit: EventSink | None = None,
    ):
        self._transport_factory = transport_factory or build_transport
        self._emit = emit or (lambda event: None)
        self._sessions: dict[str, Session] = {}
        self._by_conversation: dict[str, str] = {}
        self._tasks: set[asyncio.Task] = set()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Commands

    def start(
        self,
        conversation_id: str,
        provider_id: str,
        model_id: str,
        request: Mapping[str, Any],
        context_window: int | None = None,
    ) -> str:
        """Register a new active session and begin streaming in the background.

        Must be called from a running event loop. Returns without waiting
        for the first chunk.

        Raises:
            ConversationBusy: an active session already exists for the conversation
            UnknownProvider: provider id is not registered
        """
        descriptor = describe(provider_id)
        loop = asyncio.get_running_loop()

        with self._lock:
            existing = self._by_conversation.get(conversation_id)
            if existing is not None:
                raise ConversationBusy(conversation_id, existing)

            session = Session(
                conversation_id=conversation_id,
                provider_id=provider_id,
                model_id=model_id,
                usage=TokenUsage(context_window=context_window or descriptor.default_context_window),
            )
            self._sessions[session.session_id] = session
            self._by_conversation[conversation_id] = session.session_id
            self._publish(session, EventType.SESSION_CREATED, {
                "provider_id": provider_id,
                "model_id": model_id,
            })

            task = loop.create_task(
                self._consume(session, dict(request)),
                name=f"lmhost-session-{session.session_id[:8]}",
            )
            session.cancel_handle = task
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_task_done(session, t))

        logger.info(
            "Started session %s for conversation %s (%s/%s)",
            session.session_id, conversation_id, provider_id, model_id,
        )
        return session.session_id

    def abort(self, session_id: str) -> None:
        """Abort an active session without waiting for the transport.

        Raises:
            UnknownSession: the session is unknown or already terminal
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.active:
                raise UnknownSession(session_id)
            task = session.cancel_handle
            self._finish(session, SessionStatus.ABORTED)

        logger.info("Aborted session %s (conversation %s)", session_id, session.conversation_id)
        if task is not None and not task.done():
            self._cancel_task(task)

    def abort_all(self) -> int:
        """Abort every active session. Returns how many were aborted."""
        aborted = 0
        for session in self.list_active_sessions():
            try:
                self.abort(session.session_id)
                aborted += 1
            except UnknownSession:
                # Finished on its own in the meantime
                continue
        return aborted

    # ------------------------------------------------------------------
    # Queries

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_active_session(self, conversation_id: str) -> Session | None:
        with self._lock:
            session_id = self._by_conversation.get(conversation_id)
            return self._sessions.get(session_id) if session_id else None

    def list_active_sessions(self) -> list[Session]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.started_at)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until every consumer task (including aborted ones) has exited."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    # ------------------------------------------------------------------
    # Internals

    @staticmethod
    def _cancel_task(task: asyncio.Task) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        loop = task.get_loop()
        if running is loop:
            task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)

    def _publish(self, session: Session, event_type: EventType, data: dict[str, Any]) -> None:
        event = SessionEvent(
            type=event_type,
            conversation_id=session.conversation_id,
            session_id=session.session_id,
            data=data,
        )
        try:
            self._emit(event)
        except Exception:
            logger.exception("Event sink failed for %s event of session %s", event_type.value, session.session_id)

    def _apply_chunk(self, session: Session, chunk: Chunk) -> None:
        """Record one chunk. Caller holds the lock and has checked the session is active."""
        if chunk.delta:
            session.chunks += 1
            self._publish(session, EventType.CHUNK, {"delta": chunk.delta})

        if chunk.usage is not None:
            previous = session.usage
            session.usage = previous.merge(chunk.usage)
            if session.usage != previous:
                self._publish(session, EventType.TOKEN_BUDGET, budget_payload(session.usage))

    def _finish(
        self,
        session: Session,
        status: SessionStatus,
        error: LMHostError | None = None,
    ) -> bool:
        """Move a session to a terminal status exactly once and deregister it.

        Returns False if another path already won the transition.
        """
        with self._lock:
            if not session.active:
                return False
            session.status = status
            session.cancel_handle = None
            self._sessions.pop(session.session_id, None)
            if self._by_conversation.get(session.conversation_id) == session.session_id:
                del self._by_conversation[session.conversation_id]

            if status is SessionStatus.COMPLETED:
                self._publish(session, EventType.TOKEN_BUDGET, budget_payload(session.usage))
                self._publish(session, EventType.END, {
                    "final_usage": session.usage.to_dict(),
                    "elapsed_seconds": round(session.elapsed, 3),
                })
            elif status is SessionStatus.FAILED:
                data: dict[str, Any] = {"reason": error.kind if error else TransportError.kind}
                if error is not None:
                    data["message"] = error.message
                    detail = getattr(error, "detail", None)
                    if detail:
                        data["detail"] = detail
                self._publish(session, EventType.ERROR, data)
            else:
                self._publish(session, EventType.ABORTED, {
                    "elapsed_seconds": round(session.elapsed, 3),
                })
        return True

    def _on_task_done(self, session: Session, task: asyncio.Task) -> None:
        """Settle a session whose task ended without running its own cleanup.

        A task cancelled before its first step never enters ``_consume``.
        """
        self._tasks.discard(task)
        if task.cancelled():
            if self._finish(session, SessionStatus.ABORTED):
                logger.info("Session %s cancelled before streaming began", session.session_id)
            return
        error = task.exception()
        if error is not None:
            self._finish(session, SessionStatus.FAILED, TransportError(f"Unexpected error: {error}", detail=repr(error)))
        else:
            self._finish(session, SessionStatus.FAILED, TransportError("Stream ended unexpectedly"))

    async def _consume(self, session: Session, request: dict[str, Any]) -> None:
        """Consume the transport stream for one session.

        Every exit path ends with the session terminal and deregistered.
        """
        try:
            transport = self._transport_factory(session.provider_id)
            async with aclosing(transport.complete(session.model_id, request)) as stream:
                async for chunk in stream:
                    with self._lock:
                        if not session.active:
                            # Aborted while this chunk was in flight
                            break
                        self._apply_chunk(session, chunk)
            if self._finish(session, SessionStatus.COMPLETED):
                logger.info(
                    "Session %s completed: %d chunks, %d tokens",
                    session.session_id, session.chunks, session.usage.used,
                )
        except asyncio.CancelledError:
            self._finish(session, SessionStatus.ABORTED)
            raise
        except LMHostError as e:
            if self._finish(session, SessionStatus.FAILED, e):
                logger.warning("Session %s failed (%s): %s", session.session_id, e.kind, e.message)
        except Exception as e:
            logger.exception("Session %s failed with an unexpected error", session.session_id)
            self._finish(session, SessionStatus.FAILED, TransportError(f"Unexpected error: {e}", detail=repr(e)))
        finally:
            # No-op unless a path above left the session active
            self._finish(session, SessionStatus.FAILED, TransportError("Stream ended unexpectedly"))


# Global session manager instance
_session_manager: SessionManager | None = None


def _configured_transport(provider_id: str):
    from lmhost.server.state import get_config_manager

    config_mgr = get_config_manager()
    return build_transport(
        provider_id,
        config_mgr.get_provider_settings(provider_id),
        read_timeout=config_mgr.get_stream_timeout(),
    )


def get_session_manager() -> SessionManager:
    """Get the global session manager, wired to the global event bridge."""
    global _session_manager
    if _session_manager is None:
        from .event_bridge import get_event_bridge

        _session_manager = SessionManager(
            transport_factory=_configured_transport,
            emit=get_event_bridge().publish,
        )
    return _session_manager


def reset_session_manager() -> None:
    """Reset the global session manager (for testing)."""
    global _session_manager
    _session_manager = None
