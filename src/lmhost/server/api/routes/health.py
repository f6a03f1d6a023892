"""Liveness endpoints."""

from fastapi import APIRouter

from lmhost.server import __version__
from lmhost.server.api.schemas import HealthResponse, StatusResponse
from lmhost.server.services import get_session_manager
from lmhost.server.state import get_uptime

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe with the number of streams in flight."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=get_uptime(),
        active_streams=get_session_manager().count(),
    )


@router.get("/status", response_model=StatusResponse)
async def status() -> StatusResponse:
    """Version, uptime and the conversations that currently have a stream."""
    sessions = get_session_manager().list_active_sessions()
    return StatusResponse(
        version=__version__,
        uptime_seconds=get_uptime(),
        active_conversations=sorted({s.conversation_id for s in sessions}),
    )
