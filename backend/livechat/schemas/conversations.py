"""Pydantic models for live conversations.

Conversation is the persisted record. The summary models are the shapes
served by the REST endpoints.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal, Optional

from pydantic import Field, model_validator

from .base import WireModel
from .messages import Message, utcnow

Priority = Literal["low", "medium", "high"]

# Fields a customer must provide before the automated responder takes over.
REQUIRED_SURVEY_FIELDS: tuple[str, ...] = ("name", "email")


class ConversationStatus(StrEnum):
    """Lifecycle of a conversation."""

    SURVEY = "survey"
    AUTOMATED = "automated"
    HUMAN_CONTROLLED = "human_controlled"
    CLOSED = "closed"


class CustomerInfo(WireModel):
    """Contact details collected from the widget and the survey.

    Known fields are typed; anything else the widget sends lands in ``extra``.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    shopify_customer_id: Optional[str] = None
    extra: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_unknown(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        accepted = {"extra"}
        for name, info in cls.model_fields.items():
            accepted.update((name, info.alias))
        known = {k: v for k, v in data.items() if k in accepted}
        unknown = {
            k: str(v) for k, v in data.items() if k not in accepted and v is not None
        }
        if unknown:
            known["extra"] = {**dict(known.get("extra") or {}), **unknown}
        return known

    def with_field(self, field: str, value: str) -> "CustomerInfo":
        """Return a copy with ``field`` set, routing unknown names to ``extra``.

        Accepts the snake_case or camelCase spelling of a known field.
        """
        for name, info in type(self).model_fields.items():
            if name != "extra" and field in (name, info.alias):
                return self.model_copy(update={name: value})
        return self.model_copy(update={"extra": {**self.extra, field: value}})


class Conversation(WireModel):
    """A live support conversation between a customer, the bot and agents."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    customer_id: str = Field(min_length=1)
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    status: ConversationStatus = ConversationStatus.SURVEY
    messages: list[Message] = Field(default_factory=list)
    survey_completed: bool = False
    agent_id: Optional[str] = None
    agent_takeover_at: Optional[datetime] = None
    is_live: bool = True
    priority: Priority = "medium"
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    closed_at: Optional[datetime] = None

    def invariant_violations(self) -> list[str]:
        """Describe every broken lifecycle invariant (empty when consistent)."""
        problems = []
        if (self.agent_id is not None) != (self.status == ConversationStatus.HUMAN_CONTROLLED):
            problems.append(f"agent_id={self.agent_id!r} with status {self.status.value}")
        if self.is_live == (self.status == ConversationStatus.CLOSED):
            problems.append(f"is_live={self.is_live} with status {self.status.value}")
        has_fields = all(getattr(self.customer_info, f) for f in REQUIRED_SURVEY_FIELDS)
        if self.survey_completed and not has_fields:
            problems.append("survey_completed without the required survey fields")
        if has_fields and not self.survey_completed:
            problems.append("required survey fields present but survey_completed unset")
        if len({m.id for m in self.messages}) != len(self.messages):
            problems.append("duplicate message ids")
        return problems

    def has_message(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self.messages)

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def history_before(self, message_id: str, limit: int) -> list[Message]:
        """The ``limit`` messages preceding ``message_id`` (oldest first)."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return self.messages[max(0, index - limit):index]
        return self.messages[-limit:] if limit > 0 else []


class ConversationDetail(WireModel):
    """Conversation as served to the chat widget."""

    id: str
    status: ConversationStatus
    messages: list[Message]
    customer_info: CustomerInfo
    survey_completed: bool
    is_live: bool
    created_at: datetime

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationDetail":
        return cls(
            id=conversation.id,
            status=conversation.status,
            messages=conversation.messages,
            customer_info=conversation.customer_info,
            survey_completed=conversation.survey_completed,
            is_live=conversation.is_live,
            created_at=conversation.created_at,
        )


class CustomerConversationSummary(WireModel):
    """One row of a customer's conversation history."""

    id: str
    status: ConversationStatus
    last_message: Optional[Message] = None
    created_at: datetime
    is_live: bool


class AdminConversationSummary(WireModel):
    """Conversation row for the admin list view (no message bodies)."""

    id: str
    customer_id: str
    customer_info: CustomerInfo
    status: ConversationStatus
    is_live: bool
    agent_id: Optional[str] = None
    message_count: int
    created_at: datetime
    updated_at: datetime
    agent_takeover_at: Optional[datetime] = None

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "AdminConversationSummary":
        return cls(
            id=conversation.id,
            customer_id=conversation.customer_id,
            customer_info=conversation.customer_info,
            status=conversation.status,
            is_live=conversation.is_live,
            agent_id=conversation.agent_id,
            message_count=len(conversation.messages),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            agent_takeover_at=conversation.agent_takeover_at,
        )


class Pagination(WireModel):
    page: int
    limit: int
    total: int
    pages: int


class AdminConversationList(WireModel):
    conversations: list[AdminConversationSummary]
    pagination: Pagination


class CreateConversationRequest(WireModel):
    """Body for POST /chat/conversations."""

    customer_id: str = Field(min_length=1, max_length=200)
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)


class CloseConversationResponse(WireModel):
    success: bool
    already_closed: bool = False
