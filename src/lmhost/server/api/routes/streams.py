"""Streaming session endpoints (start, abort, list)."""

from fastapi import APIRouter, HTTPException

from lmhost.server.api.schemas import (
    ActiveSessionListResponse,
    ActiveSessionResponse,
    StreamAbortResponse,
    StreamStartRequest,
    StreamStartResponse,
    TokenUsageSchema,
)
from lmhost.server.services import Session, get_session_manager
from lmhost.util.errors import ConversationBusy, UnknownProvider, UnknownSession

router = APIRouter()


def _session_to_response(session: Session) -> ActiveSessionResponse:
    return ActiveSessionResponse(
        session_id=session.session_id,
        conversation_id=session.conversation_id,
        provider_id=session.provider_id,
        model_id=session.model_id,
        status=session.status.value,
        elapsed_seconds=round(session.elapsed, 3),
        usage=TokenUsageSchema(**session.usage.to_dict()),
    )


@router.post("", response_model=StreamStartResponse, status_code=201)
async def start_stream(request: StreamStartRequest) -> StreamStartResponse:
    """Start streaming a completion for a conversation.

    Subscribe to ``/api/v1/ws/{conversation_id}`` to receive the events.
    """
    manager = get_session_manager()
    try:
        session_id = manager.start(
            request.conversation_id,
            request.provider_id,
            request.model_id,
            request.completion_request(),
            context_window=request.context_window,
        )
    except UnknownProvider as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    except ConversationBusy as e:
        raise HTTPException(status_code=409, detail=e.to_dict()) from None

    return StreamStartResponse(conversation_id=request.conversation_id, session_id=session_id)


@router.get("", response_model=ActiveSessionListResponse)
async def list_streams() -> ActiveSessionListResponse:
    """List active streaming sessions."""
    sessions = [_session_to_response(s) for s in get_session_manager().list_active_sessions()]
    return ActiveSessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=ActiveSessionResponse)
async def get_stream(session_id: str) -> ActiveSessionResponse:
    """Get an active session. Finished sessions are not retained."""
    session = get_session_manager().get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return _session_to_response(session)


@router.delete("/{session_id}", response_model=StreamAbortResponse)
async def abort_stream(session_id: str) -> StreamAbortResponse:
    """Abort a stream. Returns aborted=false for unknown or finished sessions."""
    try:
        get_session_manager().abort(session_id)
    except UnknownSession:
        return StreamAbortResponse(session_id=session_id, aborted=False)
    return StreamAbortResponse(session_id=session_id, aborted=True)
