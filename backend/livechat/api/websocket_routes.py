"""Real-time channel endpoint.

One receive loop per socket: frames from a connection are handled strictly
in arrival order, while other sockets run concurrently on the same loop.
Automated replies run as background tasks and never hold up this loop.
"""

import json
import logging
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from livechat.chat.service import ChatService

from .deps import get_ws_chat_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    service: ChatService = Depends(get_ws_chat_service),
):
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    service.connect(connection_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await service.hub.send(
                    connection_id,
                    "error",
                    {"code": "validation_failed", "message": "Frames must be JSON", "event": None},
                )
                continue
            await service.dispatch(connection_id, frame)
    except WebSocketDisconnect as exc:
        logger.debug("Socket %s closed with code %s", connection_id, exc.code)
    finally:
        service.disconnect(connection_id)
