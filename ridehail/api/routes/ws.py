"""
Socket channel
==============

WS /ws?token=<jwt>

Server -> client messages are ``{"event": <name>, "data": <payload>}`` with
names ``new-trip-request``, ``trip-accepted``, ``trip-updated`` and
``driver-location``.  The only client -> server message is ``ping``; room
membership is decided by the server as trips move through their lifecycle.
"""

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from ridehail.api.security import AuthError, decode_access_token
from ridehail.realtime.rooms import envelope, rooms

logger = logging.getLogger(__name__)

router = APIRouter(tags=["socket"])


@router.websocket("/ws")
async def trip_socket(websocket: WebSocket, token: str = Query("")):
    try:
        user_id, role = decode_access_token(token)
    except AuthError as exc:
        logger.info("Rejected socket: %s", exc.reason)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.reason)
        return

    await websocket.accept()
    rooms.connect(user_id, websocket)
    await websocket.send_text(
        envelope("connected", {"userId": user_id, "role": role.value})
    )
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_text(envelope("error", {"message": "invalid JSON"}))
                continue

            if isinstance(message, dict) and message.get("event") == "ping":
                await websocket.send_text(envelope("pong", message.get("data")))
            else:
                await websocket.send_text(envelope("error", {"message": "unknown event"}))
    except WebSocketDisconnect:
        pass
    finally:
        rooms.disconnect(user_id, websocket)
