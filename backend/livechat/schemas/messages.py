"""Pydantic models for conversation messages."""

import uuid
from datetime import UTC, datetime
from typing import Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from .base import WireModel

Sender = Literal["customer", "automated", "agent"]
MessageKind = Literal["handoff", "reply", "fallback"]


def new_message_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


class MessageMetadata(WireModel):
    """Informational data attached to a message. Never read by routing."""

    model_config = ConfigDict(frozen=True)

    kind: Optional[MessageKind] = None
    render_delay_ms: Optional[int] = None
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    extra: dict[str, str] = Field(default_factory=dict)


class Message(WireModel):
    """A single message in a conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id, min_length=1, max_length=100)
    sender: Sender
    content: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    agent_id: Optional[str] = None
    metadata: Optional[MessageMetadata] = None

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value

    @model_validator(mode="after")
    def _agent_id_only_for_agents(self) -> "Message":
        if self.sender == "agent" and not self.agent_id:
            raise ValueError("agent messages require agent_id")
        if self.sender != "agent" and self.agent_id is not None:
            raise ValueError("agent_id is only allowed on agent messages")
        return self
