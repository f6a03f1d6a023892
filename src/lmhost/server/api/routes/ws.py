"""WebSocket boundary: session events out, start/abort commands in."""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from lmhost.server.services import get_event_bridge, get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/{conversation_id}")
async def websocket_endpoint(websocket: WebSocket, conversation_id: str):
    """WebSocket endpoint for one conversation.

    Server -> Client message types:
    - session-created, chunk, token-budget: session progress
    - end, error, aborted: exactly one per session
    - started, abort-accepted: command replies
    - pong: Response to ping

    Client -> Server message types:
    - start: {provider_id, model_id, request, context_window?}
    - abort: {session_id?} (defaults to the conversation's active session)
    - ping: Heartbeat

    Query parameter ``since`` replays buffered events newer than that seq.
    """
    await websocket.accept()

    since = websocket.query_params.get("since")
    try:
        since_seq = int(since) if since is not None else None
    except ValueError:
        since_seq = None

    bridge = get_event_bridge()
    manager = get_session_manager()
    subscription = bridge.subscribe(conversation_id, since_seq=since_seq)

    async def forward_events():
        """Relay session events to the socket in publish order."""
        async for event in subscription:
            await websocket.send_json(event.to_message())

    forward_task = asyncio.create_task(forward_events())

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "conversation_id": conversation_id,
                    "data": {"reason": "invalid_command", "message": "Invalid JSON"},
                })
                continue

            reply = bridge.handle_command(message, conversation_id=conversation_id, manager=manager)
            await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.debug("WebSocket for conversation %s disconnected", conversation_id)
    finally:
        subscription.close()
        forward_task.cancel()
        try:
            await forward_task
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
