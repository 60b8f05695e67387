"""FastAPI dependencies."""

import logging

from fastapi import HTTPException, Request, WebSocket

from livechat.chat.service import ChatService
from livechat.core.errors import (
    ChatError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamFailure,
)

logger = logging.getLogger(__name__)


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_ws_chat_service(websocket: WebSocket) -> ChatService:
    return websocket.app.state.chat_service


def http_error(exc: ChatError) -> HTTPException:
    """Map a chat error onto the matching HTTP status."""
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, InvalidTransitionError):
        status_code = 409
    elif isinstance(exc, UpstreamFailure):
        logger.warning("Session store unavailable: %s", exc.message)
        status_code = 503
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=exc.message)
