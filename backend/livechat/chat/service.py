"""Inbound event handlers for the real-time channel.

``ChatService`` owns the per-instance collaborators (store, hub, presence,
router, orchestrator). ``dispatch`` is the single entry point used by the
socket loop: it validates the payload, runs the handler and turns any
failure into an ``error`` frame for the originating connection only.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from livechat.core.config import Settings, get_settings
from livechat.core.errors import ChatError, NotFoundError, ValidationFailure
from livechat.realtime.hub import Connection, RoomHub
from livechat.realtime.presence import PresenceRegistry
from livechat.schemas.conversations import Conversation, CustomerInfo
from livechat.schemas.events import (
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
from livechat.schemas.messages import utcnow
from livechat.services.reply_generator import ReplyGenerator
from livechat.store.base import ConversationStore

from . import state_machine
from .orchestrator import AutoReplyOrchestrator, Sleep
from .router import MessageRouter

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ChatService:
    def __init__(
        self,
        store: ConversationStore,
        generator: ReplyGenerator,
        settings: Optional[Settings] = None,
        hub: Optional[RoomHub] = None,
        presence: Optional[PresenceRegistry] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.hub = hub or RoomHub()
        self.presence = presence or PresenceRegistry()
        self.router = MessageRouter(store, self.hub)
        orchestrator_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.orchestrator = AutoReplyOrchestrator(
            store, self.router, generator, self.settings, **orchestrator_kwargs
        )
        self._handlers: dict[str, Callable[[str, Any], Awaitable[None]]] = {
            "join_chat": self.join_chat,
            "send_message": self.send_message,
            "survey_response": self.survey_response,
            "join_admin": self.join_admin,
            "takeover_conversation": self.takeover_conversation,
            "agent_message": self.agent_message,
            "close_conversation": self.close_conversation_event,
        }

    # ── Connection lifecycle ────────────────────────────────────────

    def connect(self, connection_id: str, connection: Connection) -> None:
        self.hub.add(connection_id, connection)
        logger.info("Client connected: %s", connection_id)

    def disconnect(self, connection_id: str) -> None:
        entry = self.presence.remove(connection_id)
        self.hub.remove(connection_id)
        logger.info(
            "Client disconnected: %s (%s)",
            connection_id, entry.role if entry else "anonymous",
        )

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()

    # ── Dispatch ────────────────────────────────────────────────────

    async def dispatch(self, connection_id: str, frame: Any) -> None:
        """Handle one inbound frame. Never raises."""
        event_name = frame.get("event") if isinstance(frame, dict) else None
        try:
            envelope = Envelope.model_validate(frame)
            event_name = envelope.event
            handler = self._handlers.get(envelope.event)
            payload_model = INBOUND_PAYLOADS.get(envelope.event)
            if handler is None or payload_model is None:
                raise ValidationFailure(f"Unknown event {envelope.event!r}")
            payload = payload_model.model_validate(envelope.data)
            await handler(connection_id, payload)
        except ValidationError as exc:
            await self._report(connection_id, event_name, ValidationFailure(_validation_message(exc)))
        except ChatError as exc:
            await self._report(connection_id, event_name, exc)
        except Exception:
            logger.exception("Unhandled error in %s from %s", event_name, connection_id)
            await self.hub.send(
                connection_id,
                "error",
                {"code": "internal_error", "message": "Something went wrong", "event": event_name},
            )

    async def _report(self, connection_id: str, event_name: Optional[str], exc: ChatError) -> None:
        log = logger.warning if exc.code == "upstream_failure" else logger.info
        log("%s from %s rejected: %s (%s)", event_name, connection_id, exc.message, exc.code)
        await self.hub.send(
            connection_id,
            "error",
            {"code": exc.code, "message": exc.message, "event": event_name},
        )

    # ── Customer events ─────────────────────────────────────────────

    async def join_chat(self, connection_id: str, payload: JoinChat) -> Conversation:
        conversation, created = await self.store.get_or_create_live(
            payload.customer_id, payload.customer_info, self.settings.handoff_message
        )
        self._leave_stale_rooms(connection_id, "customer", keep=conversation.id)
        self.presence.register_customer(connection_id, conversation.id, payload.customer_id)
        self.hub.join(connection_id, conversation.id)
        logger.info(
            "Customer %s %s conversation %s",
            payload.customer_id, "started" if created else "rejoined", conversation.id,
        )

        await self.hub.send(
            connection_id,
            "conversation_joined",
            {
                "conversationId": conversation.id,
                "status": conversation.status.value,
                "messages": [m.to_wire() for m in conversation.messages],
                "surveyCompleted": conversation.survey_completed,
            },
        )
        await self.router.broadcast_status(
            conversation,
            customerInfo=conversation.customer_info.to_wire(),
            isLive=conversation.is_live,
        )
        return conversation

    def _leave_stale_rooms(
        self, connection_id: str, role: str, keep: Optional[str] = None
    ) -> None:
        """Drop rooms joined under an earlier registration of this connection.

        A role switch leaves every room; a customer moving to another
        conversation leaves only the old conversation room.
        """
        previous = self.presence.get(connection_id)
        if previous is None:
            return
        if previous.role != role:
            stale = self.hub.rooms_of(connection_id)
        elif previous.conversation_id not in (None, keep):
            stale = {previous.conversation_id}
        else:
            return
        for room in stale - {keep}:
            self.hub.leave(connection_id, room)

    def _customer_conversation(self, connection_id: str) -> str:
        entry = self.presence.get(connection_id)
        if entry is None or entry.role != "customer" or entry.conversation_id is None:
            raise NotFoundError("Join a chat before sending messages")
        return entry.conversation_id

    async def send_message(self, connection_id: str, payload: SendMessage) -> None:
        conversation_id = self._customer_conversation(connection_id)
        routed = await self.router.route_customer_message(
            conversation_id, payload.content, payload.message_id, origin=connection_id
        )
        # Status comes from the write itself, not from anything cached.
        if not routed.duplicate and state_machine.accepts_automated_reply(routed.conversation):
            self.orchestrator.schedule(routed.conversation, routed.message)

    async def survey_response(self, connection_id: str, payload: SurveyResponse) -> Conversation:
        conversation_id = self._customer_conversation(connection_id)
        result = await self.store.update(
            conversation_id,
            lambda c: state_machine.apply_survey_answer(
                c, payload.field, payload.value, utcnow(), self.settings.handoff_message
            ),
        )
        conversation = result.after

        await self.hub.send(
            connection_id,
            "survey_updated",
            {"surveyCompleted": conversation.survey_completed, "status": conversation.status.value},
        )
        if state_machine.survey_completed_now(result.before, conversation):
            logger.info("Survey completed for conversation %s", conversation.id)
            handoff = conversation.messages[-1]
            await self.hub.emit(conversation.id, "message_received", handoff.to_wire())
            await self.router.broadcast_status(
                conversation, customerInfo=conversation.customer_info.to_wire()
            )
        return conversation

    # ── Agent events ────────────────────────────────────────────────

    async def join_admin(self, connection_id: str, payload: JoinAdmin) -> None:
        self._leave_stale_rooms(connection_id, "agent")
        self.presence.register_agent(connection_id, payload.agent_id)
        self.hub.join(connection_id, AGENTS_ROOM)
        logger.info("Agent %s joined admin dashboard", payload.agent_id)
        await self.hub.send(connection_id, "admin_joined", {"agentId": payload.agent_id})

    async def takeover_conversation(
        self, connection_id: str, payload: TakeoverConversation
    ) -> Conversation:
        result = await self.store.update(
            payload.conversation_id,
            lambda c: state_machine.take_over(c, payload.agent_id, utcnow()),
        )
        conversation = result.after
        if result.before.agent_id not in (None, payload.agent_id):
            logger.warning(
                "Agent %s took conversation %s over from agent %s",
                payload.agent_id, conversation.id, result.before.agent_id,
            )
        else:
            logger.info("Agent %s took over conversation %s", payload.agent_id, conversation.id)

        self.hub.join(connection_id, conversation.id)
        await self.hub.emit(conversation.id, "agent_joined", {"agentId": payload.agent_id})
        await self.router.broadcast_status(conversation, agentId=payload.agent_id)

        target = self.presence.connection_for_agent(payload.agent_id) or connection_id
        await self.hub.send(target, "takeover_success", {"conversationId": conversation.id})
        return conversation

    async def agent_message(self, connection_id: str, payload: AgentMessage) -> None:
        await self.router.route_agent_message(
            payload.conversation_id, payload.content, payload.agent_id
        )

    async def close_conversation_event(self, connection_id: str, payload: CloseConversation) -> None:
        await self.close_conversation(payload.conversation_id)

    # ── Shared operations (socket and REST) ─────────────────────────

    async def close_conversation(self, conversation_id: str) -> tuple[Conversation, bool]:
        """Close a conversation and notify both rooms.

        Returns the conversation and whether this call closed it; closing an
        already closed conversation changes and sends nothing.
        """
        result = await self.store.update(
            conversation_id, lambda c: state_machine.close(c, utcnow())
        )
        if not result.changed:
            return result.after, False

        conversation = result.after
        logger.info("Closed conversation %s", conversation.id)
        await self.hub.emit(conversation.id, "conversation_closed", {})
        await self.router.broadcast_status(conversation, isLive=False)
        return conversation, True

    async def open_conversation(
        self, customer_id: str, customer_info: Optional[CustomerInfo] = None
    ) -> tuple[Conversation, bool]:
        """Resolve or create the customer's live conversation (REST entry)."""
        return await self.store.get_or_create_live(
            customer_id, customer_info, self.settings.handoff_message
        )
