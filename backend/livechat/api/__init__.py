"""API module - FastAPI route handlers."""

from . import conversation_routes, websocket_routes

__all__ = ["conversation_routes", "websocket_routes"]
