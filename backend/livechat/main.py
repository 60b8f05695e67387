"""FastAPI application entry point.

Builds one ChatService per app (store, hub, presence, orchestrator) and
registers the REST routers under /api and the socket at /ws. Health check
at GET /health.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import conversation_routes, websocket_routes
from .chat.service import ChatService
from .core.config import get_settings
from .core.logging_config import setup_logging
from .services.reply_generator import OpenAIReplyGenerator
from .store import build_store


def build_chat_service() -> ChatService:
    settings = get_settings()
    return ChatService(
        store=build_store(settings),
        generator=OpenAIReplyGenerator(settings=settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.chat_service.shutdown()


def create_app(chat_service: Optional[ChatService] = None) -> FastAPI:
    settings = get_settings()
    setup_logging()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.chat_service = chat_service or build_chat_service()

    origins = [o.strip() for o in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(conversation_routes.router, prefix="/api")
    app.include_router(websocket_routes.router)

    @app.get("/health")
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": settings.version,
        }

    return app


app = create_app()
