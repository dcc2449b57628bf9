"""WebSocket endpoint for the real-time chat channel.

Protocol:
    1. Client connects to /ws?token=<jwt> (or sends ``Authorization: Bearer``).
       A bad credential closes the socket with 1008 before it is accepted.
    2. Server sends {type: "connected", session_id, user}.
    3. Client sends {type: <event>, ...payload} frames (join-room,
       send-message, typing-start, ...). Each frame is handled before the
       next is read.
    4. On disconnect the session leaves every room and its typing state is
       cleared.
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from parley.auth.service import bearer_token
from parley.errors import AuthError
from parley.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
) -> None:
    services = get_services(websocket)
    manager = services.sessions

    credential = token or bearer_token(websocket.headers.get("authorization"))
    try:
        identity = await manager.authenticate(credential)
    except AuthError as exc:
        logger.info("[WS] Refused connection: %s", exc.message)
        await websocket.close(code=1008)  # 1008 = Policy Violation
        return

    await websocket.accept()
    session = await manager.open_session(websocket, identity)
    logger.info("[WS] %s connected as session %s", identity.username, session.id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            await manager.handle(session, decode_frame(message))
    except WebSocketDisconnect:
        logger.info("[WS] %s disconnected (session %s)", identity.username, session.id)
    finally:
        await manager.release(session)


def decode_frame(message: dict) -> Any:
    """Parse one ASGI receive message into a JSON value.

    Text and binary frames are both accepted; binary must be UTF-8 JSON.
    Anything unparseable becomes None, which the manager reports as a
    malformed frame.
    """
    raw = message.get("text")
    if raw is None and message.get("bytes") is not None:
        try:
            raw = message["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None
