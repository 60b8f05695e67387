"""Real-time channel payloads.

Every frame is an envelope ``{"event": <name>, "data": {...}}`` in both
directions. Inbound payload models validate ``data``; outbound events are
built from plain dicts by the router and service.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, Field, StringConstraints

from .base import WireModel
from .conversations import CustomerInfo

Id = Annotated[str, StringConstraints(min_length=1, max_length=200)]


class Envelope(BaseModel):
    """A single frame on the socket."""

    event: str = Field(min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


# ── Customer -> server ───────────────────────────────────────────────


class JoinChat(WireModel):
    customer_id: Id
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)


class SendMessage(WireModel):
    content: str = Field(min_length=1, max_length=5000)
    message_id: Optional[str] = Field(default=None, min_length=1, max_length=100)


class SurveyResponse(WireModel):
    field: str = Field(min_length=1, max_length=64)
    value: str = Field(min_length=1, max_length=500)


# ── Agent -> server ──────────────────────────────────────────────────


class JoinAdmin(WireModel):
    agent_id: Id


class TakeoverConversation(WireModel):
    conversation_id: Id
    agent_id: Id


class AgentMessage(WireModel):
    conversation_id: Id
    content: str = Field(min_length=1, max_length=5000)
    agent_id: Id


class CloseConversation(WireModel):
    conversation_id: Id


INBOUND_PAYLOADS: dict[str, type[WireModel]] = {
    "join_chat": JoinChat,
    "send_message": SendMessage,
    "survey_response": SurveyResponse,
    "join_admin": JoinAdmin,
    "takeover_conversation": TakeoverConversation,
    "agent_message": AgentMessage,
    "close_conversation": CloseConversation,
}

# Room every agent dashboard connection joins.
AGENTS_ROOM = "agents"
