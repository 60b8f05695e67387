"""Schemas module - Pydantic models for the store, the socket and the REST API."""

from .base import WireModel
from .conversations import (
    REQUIRED_SURVEY_FIELDS,
    AdminConversationList,
    AdminConversationSummary,
    CloseConversationResponse,
    Conversation,
    ConversationDetail,
    ConversationStatus,
    CreateConversationRequest,
    CustomerConversationSummary,
    CustomerInfo,
    Pagination,
    Priority,
)
from .events import (
    AGENTS_ROOM,
    INBOUND_PAYLOADS,
    AgentMessage,
    CloseConversation,
    Envelope,
    JoinAdmin,
    JoinChat,
    SendMessage,
    SurveyResponse,
    TakeoverConversation,
)
from .messages import Message, MessageMetadata, Sender

__all__ = [
    "WireModel",
    # Conversations
    "REQUIRED_SURVEY_FIELDS",
    "AdminConversationList",
    "AdminConversationSummary",
    "CloseConversationResponse",
    "Conversation",
    "ConversationDetail",
    "ConversationStatus",
    "CreateConversationRequest",
    "CustomerConversationSummary",
    "CustomerInfo",
    "Pagination",
    "Priority",
    # Events
    "AGENTS_ROOM",
    "INBOUND_PAYLOADS",
    "AgentMessage",
    "CloseConversation",
    "Envelope",
    "JoinAdmin",
    "JoinChat",
    "SendMessage",
    "SurveyResponse",
    "TakeoverConversation",
    # Messages
    "Message",
    "MessageMetadata",
    "Sender",
]
