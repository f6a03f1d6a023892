"""Services layer for lmhost server."""

from .event_bridge import (
    EventBridge,
    Subscription,
    get_event_bridge,
    reset_event_bridge,
)
from .session_manager import (
    EventType,
    Session,
    SessionEvent,
    SessionManager,
    SessionStatus,
    get_session_manager,
    reset_session_manager,
)
from .transport import ChatTransport, Chunk, TokenUsage, build_transport

__all__ = [
    # Event bridge
    "EventBridge",
    "Subscription",
    "get_event_bridge",
    "reset_event_bridge",
    # Session manager
    "EventType",
    "Session",
    "SessionEvent",
    "SessionManager",
    "SessionStatus",
    "get_session_manager",
    "reset_session_manager",
    # Transport
    "ChatTransport",
    "Chunk",
    "TokenUsage",
    "build_transport",
]
