"""Conversation lifecycle: survey -> automated -> human_controlled -> closed.

Pure functions. Each takes the current conversation and returns the next
one (or None when nothing changes), so the store can apply it atomically
with ``ConversationStore.update``. Illegal moves raise
``InvalidTransitionError``.
"""

from datetime import datetime
from typing import Optional

from livechat.core.errors import InvalidTransitionError, ValidationFailure
from livechat.schemas.conversations import (
    REQUIRED_SURVEY_FIELDS,
    Conversation,
    ConversationStatus,
    CustomerInfo,
)
from livechat.schemas.messages import Message, MessageMetadata

S = ConversationStatus

TRANSITIONS: dict[ConversationStatus, frozenset[ConversationStatus]] = {
    S.SURVEY: frozenset({S.AUTOMATED, S.CLOSED}),
    S.AUTOMATED: frozenset({S.HUMAN_CONTROLLED, S.CLOSED}),
    # Re-takeover by another agent: last writer wins.
    S.HUMAN_CONTROLLED: frozenset({S.HUMAN_CONTROLLED, S.CLOSED}),
    S.CLOSED: frozenset(),
}


def can_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    return target in TRANSITIONS[current]


def is_survey_complete(info: CustomerInfo) -> bool:
    return all(getattr(info, field) for field in REQUIRED_SURVEY_FIELDS)


def accepts_automated_reply(conversation: Conversation) -> bool:
    """Whether the automated responder may answer right now."""
    return conversation.status == S.AUTOMATED


def _require(conversation: Conversation, target: ConversationStatus) -> None:
    if not can_transition(conversation.status, target):
        raise InvalidTransitionError(
            f"Conversation {conversation.id} cannot move from "
            f"{conversation.status.value} to {target.value}"
        )


def handoff_message(text: str, now: datetime) -> Message:
    return Message(
        sender="automated",
        content=text,
        timestamp=now,
        metadata=MessageMetadata(kind="handoff"),
    )


def start(conversation: Conversation, now: datetime, handoff_text: str) -> Conversation:
    """Settle a brand-new conversation.

    A join that already carries every required survey field skips the
    survey: the conversation starts ``automated`` with the handoff message.
    """
    if conversation.survey_completed or not is_survey_complete(conversation.customer_info):
        return conversation
    _require(conversation, S.AUTOMATED)
    return conversation.model_copy(
        update={
            "survey_completed": True,
            "status": S.AUTOMATED,
            "messages": [*conversation.messages, handoff_message(handoff_text, now)],
        }
    )


def apply_survey_answer(
    conversation: Conversation,
    field: str,
    value: str,
    now: datetime,
    handoff_text: str,
) -> Conversation:
    """Record one survey answer.

    When this answer completes the survey for the first time, the status
    moves to ``automated`` and the handoff message is appended in the same
    returned conversation, so both are persisted by one write.
    """
    if conversation.status == S.CLOSED:
        raise InvalidTransitionError(f"Conversation {conversation.id} is closed")
    value = value.strip()
    if not value:
        raise ValidationFailure(f"Survey field {field!r} needs a value")

    info = conversation.customer_info.with_field(field, value)
    update: dict = {"customer_info": info}

    if is_survey_complete(info) and not conversation.survey_completed:
        update["survey_completed"] = True
        if conversation.status == S.SURVEY:
            _require(conversation, S.AUTOMATED)
            update["status"] = S.AUTOMATED
            update["messages"] = [*conversation.messages, handoff_message(handoff_text, now)]

    return conversation.model_copy(update=update)


def take_over(conversation: Conversation, agent_id: str, now: datetime) -> Conversation:
    """Hand the conversation to ``agent_id``. Overwrites any previous owner."""
    if not agent_id:
        raise ValidationFailure("Takeover requires an agent id")
    _require(conversation, S.HUMAN_CONTROLLED)
    return conversation.model_copy(
        update={
            "status": S.HUMAN_CONTROLLED,
            "agent_id": agent_id,
            "agent_takeover_at": now,
        }
    )


def close(conversation: Conversation, now: datetime) -> Optional[Conversation]:
    """Close the conversation; None if it already is (closed_at is kept)."""
    if conversation.status == S.CLOSED:
        return None
    _require(conversation, S.CLOSED)
    return conversation.model_copy(
        update={
            "status": S.CLOSED,
            "is_live": False,
            "closed_at": now,
            "agent_id": None,
        }
    )


def survey_completed_now(before: Conversation, after: Conversation) -> bool:
    """True when ``after`` is the write that moved survey -> automated."""
    return before.status == S.SURVEY and after.status == S.AUTOMATED
