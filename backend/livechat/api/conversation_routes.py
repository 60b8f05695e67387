"""Conversation REST endpoints.

Widget-facing routes live under /chat, the agent list views under /admin.
Closing goes through the same service call as the socket event, so both
rooms are notified either way.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import JSONResponse

from livechat.chat.service import ChatService
from livechat.core.errors import ChatError
from livechat.schemas.conversations import (
    AdminConversationList,
    AdminConversationSummary,
    CloseConversationResponse,
    Conversation,
    ConversationDetail,
    ConversationStatus,
    CreateConversationRequest,
    CustomerConversationSummary,
    Pagination,
)

from .deps import get_chat_service, http_error

router = APIRouter()


async def _get_or_404(service: ChatService, conversation_id: str) -> Conversation:
    try:
        conversation = await service.store.find_by_id(conversation_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


# ── Widget endpoints ─────────────────────────────────────────────────


@router.get("/chat/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str = Path(min_length=1, max_length=200),
    service: ChatService = Depends(get_chat_service),
):
    """Retrieve a conversation with its message history."""
    conversation = await _get_or_404(service, conversation_id)
    return ConversationDetail.from_conversation(conversation).to_wire()


@router.get("/chat/customers/{customer_id}/conversations")
async def get_customer_conversations(
    customer_id: str = Path(min_length=1, max_length=200),
    limit: int = Query(default=10, ge=1, le=50),
    service: ChatService = Depends(get_chat_service),
):
    """A customer's most recent conversations, newest first."""
    try:
        conversations = await service.store.list_by_customer(customer_id, limit=limit)
    except ChatError as exc:
        raise http_error(exc) from exc
    return [
        CustomerConversationSummary(
            id=c.id,
            status=c.status,
            last_message=c.messages[-1] if c.messages else None,
            created_at=c.created_at,
            is_live=c.is_live,
        ).to_wire()
        for c in conversations
    ]


@router.post("/chat/conversations")
async def create_conversation(
    body: CreateConversationRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Return the customer's live conversation, creating one if needed.

    201 when a conversation was created, 200 when an existing live one was
    reused.
    """
    try:
        conversation, created = await service.open_conversation(
            body.customer_id, body.customer_info
        )
    except ChatError as exc:
        raise http_error(exc) from exc
    return JSONResponse(
        status_code=201 if created else 200,
        content=ConversationDetail.from_conversation(conversation).to_wire(),
    )


@router.post("/chat/conversations/{conversation_id}/close")
async def close_conversation(
    conversation_id: str = Path(min_length=1, max_length=200),
    service: ChatService = Depends(get_chat_service),
):
    """Close a conversation. Closing twice is not an error."""
    try:
        _, closed_now = await service.close_conversation(conversation_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    return CloseConversationResponse(success=True, already_closed=not closed_now).to_wire()


# ── Admin endpoints ──────────────────────────────────────────────────


@router.get("/admin/conversations")
async def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[ConversationStatus] = None,
    is_live: Optional[bool] = Query(default=None, alias="isLive"),
    agent_id: Optional[str] = Query(default=None, alias="agentId", max_length=200),
    search: Optional[str] = Query(default=None, max_length=200),
    service: ChatService = Depends(get_chat_service),
):
    """Paginated conversation list for the dashboard, without message bodies."""
    try:
        rows, total = await service.store.list_conversations(
            status=status,
            is_live=is_live,
            agent_id=agent_id,
            search=search,
            limit=limit,
            offset=(page - 1) * limit,
        )
    except ChatError as exc:
        raise http_error(exc) from exc
    return AdminConversationList(
        conversations=[AdminConversationSummary.from_conversation(c) for c in rows],
        pagination=Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit)
        ),
    ).to_wire()


@router.get("/admin/conversations/{conversation_id}")
async def get_admin_conversation(
    conversation_id: str = Path(min_length=1, max_length=200),
    service: ChatService = Depends(get_chat_service),
):
    """Full conversation record, including every message."""
    conversation = await _get_or_404(service, conversation_id)
    return conversation.to_wire()
