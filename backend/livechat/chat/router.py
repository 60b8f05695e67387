"""Message fan-out.

Every route persists first and broadcasts only after the store has
accepted the write; a store failure raises ``UpstreamFailure`` and nothing
is sent.

Rooms:
    conversation room   id of the conversation (customer + takeover agents)
    ``agents``          every connected agent dashboard
    direct              one connection, looked up through presence
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from livechat.core.errors import InvalidTransitionError, UnauthorizedError
from livechat.realtime.hub import RoomHub
from livechat.schemas.conversations import Conversation, ConversationStatus
from livechat.schemas.events import AGENTS_ROOM
from livechat.schemas.messages import Message, MessageMetadata, new_message_id
from livechat.store.base import ConversationStore

from . import state_machine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedMessage:
    """A message after routing, with the conversation as persisted."""

    conversation: Conversation
    message: Message
    duplicate: bool = False


def _reject_closed(conversation: Conversation) -> None:
    if conversation.status == ConversationStatus.CLOSED:
        raise InvalidTransitionError(f"Conversation {conversation.id} is closed")


class MessageRouter:
    def __init__(self, store: ConversationStore, hub: RoomHub):
        self.store = store
        self.hub = hub

    # ── Broadcast helpers ───────────────────────────────────────────

    async def broadcast_message(self, conversation: Conversation, message: Message) -> None:
        """``message_received`` to the room, ``new_message`` to the agents."""
        await self.hub.emit(conversation.id, "message_received", message.to_wire())
        await self.notify_agents_of_message(conversation, message)

    async def notify_agents_of_message(self, conversation: Conversation, message: Message) -> None:
        await self.hub.emit(
            AGENTS_ROOM,
            "new_message",
            {
                "conversationId": conversation.id,
                "message": message.to_wire(),
                "customerInfo": conversation.customer_info.to_wire(),
            },
        )

    async def broadcast_status(self, conversation: Conversation, **extra: Any) -> None:
        """``conversation_update`` to the agents room."""
        payload = {"conversationId": conversation.id, "status": conversation.status.value}
        payload.update(extra)
        await self.hub.emit(AGENTS_ROOM, "conversation_update", payload)

    async def typing(self, conversation_id: str, is_typing: bool) -> None:
        await self.hub.emit(
            conversation_id,
            "typing_indicator",
            {"isTyping": is_typing, "sender": "automated"},
        )

    # ── Routes ──────────────────────────────────────────────────────

    async def route_customer_message(
        self,
        conversation_id: str,
        content: str,
        client_message_id: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> RoutedMessage:
        """Store and fan out a customer message.

        A ``client_message_id`` that is already stored is not appended again
        and the rooms are not notified twice; the stored copy is re-sent to
        ``origin`` so a retrying client still gets its acknowledgement.
        """
        message = Message(
            id=client_message_id or new_message_id(),
            sender="customer",
            content=content,
        )
        result = await self.store.append_message(conversation_id, message, guard=_reject_closed)

        if not result.appended:
            logger.info(
                "Duplicate message %s in conversation %s ignored",
                message.id, conversation_id,
            )
            if origin is not None:
                await self.hub.send(origin, "message_received", result.message.to_wire())
            return RoutedMessage(result.conversation, result.message, duplicate=True)

        await self.broadcast_message(result.conversation, result.message)
        return RoutedMessage(result.conversation, result.message)

    async def route_agent_message(
        self, conversation_id: str, content: str, agent_id: str
    ) -> RoutedMessage:
        """Store and deliver an agent message to the conversation room.

        Raises ``UnauthorizedError`` unless ``agent_id`` owns the
        conversation at the moment of the write.
        """

        def owned_by_sender(conversation: Conversation) -> None:
            if conversation.agent_id != agent_id:
                raise UnauthorizedError(
                    f"Agent {agent_id} does not own conversation {conversation.id}"
                )

        message = Message(sender="agent", content=content, agent_id=agent_id)
        result = await self.store.append_message(conversation_id, message, guard=owned_by_sender)
        await self.hub.emit(conversation_id, "message_received", result.message.to_wire())
        return RoutedMessage(result.conversation, result.message)

    async def route_automated_message(
        self,
        conversation_id: str,
        content: str,
        metadata: Optional[MessageMetadata] = None,
    ) -> Optional[RoutedMessage]:
        """Store an automated reply if the conversation still accepts one.

        The status is checked against the conversation as loaded under the
        write lock. Returns None (nothing stored or sent) when a human has
        taken over or the conversation was closed in the meantime.
        Broadcasting is left to the caller so it can stop the typing
        indicator first.
        """

        def still_automated(conversation: Conversation) -> None:
            if not state_machine.accepts_automated_reply(conversation):
                raise InvalidTransitionError(
                    f"Conversation {conversation.id} is {conversation.status.value}"
                )

        message = Message(sender="automated", content=content, metadata=metadata)
        try:
            result = await self.store.append_message(
                conversation_id, message, guard=still_automated
            )
        except InvalidTransitionError:
            return None
        return RoutedMessage(result.conversation, result.message)
