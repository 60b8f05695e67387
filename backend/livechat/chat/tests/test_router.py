"""Tests for MessageRouter fan-out and write guards."""

from unittest.mock import AsyncMock

import pytest

from livechat.chat.router import MessageRouter
from livechat.core.errors import (
    InvalidTransitionError,
    UnauthorizedError,
    UpstreamFailure,
    ValidationFailure,
)
from livechat.realtime.hub import RoomHub
from livechat.schemas.conversations import ConversationStatus
from livechat.schemas.events import AGENTS_ROOM
from livechat.schemas.messages import MessageMetadata

from .conftest import FakeSocket


async def _setup(store):
    hub = RoomHub()
    router = MessageRouter(store, hub)
    conversation = await store.create("c1")
    customer, agent = FakeSocket(), FakeSocket()
    hub.add("cust", customer)
    hub.add("agent", agent)
    hub.join("cust", conversation.id)
    hub.join("agent", AGENTS_ROOM)
    return router, conversation, customer, agent


# ── Customer messages ────────────────────────────────────────────────


class TestCustomerMessages:
    @pytest.mark.asyncio
    async def test_persisted_then_broadcast(self, store):
        router, conversation, customer, agent = await _setup(store)

        routed = await router.route_customer_message(conversation.id, "hello")

        assert routed.duplicate is False
        assert (await store.get(conversation.id)).messages == [routed.message]
        assert customer.events("message_received")[0]["content"] == "hello"
        notice = agent.events("new_message")[0]
        assert notice["conversationId"] == conversation.id
        assert notice["message"]["id"] == routed.message.id

    @pytest.mark.asyncio
    async def test_duplicate_acknowledged_to_origin_only(self, store):
        router, conversation, customer, agent = await _setup(store)
        await router.route_customer_message(conversation.id, "hello", "m-1", origin="cust")

        routed = await router.route_customer_message(conversation.id, "hello again", "m-1", origin="cust")

        assert routed.duplicate is True
        assert routed.message.content == "hello"
        assert len(customer.events("message_received")) == 2
        assert len(agent.events("new_message")) == 1
        assert len((await store.get(conversation.id)).messages) == 1

    @pytest.mark.asyncio
    async def test_id_taken_by_agent_message_rejected(self, store):
        router, conversation, customer, agent = await _setup(store)
        await store.update_status(
            conversation.id, status=ConversationStatus.HUMAN_CONTROLLED, agent_id="ag1"
        )
        sent = await router.route_agent_message(conversation.id, "agent says hi", "ag1")

        with pytest.raises(ValidationFailure):
            await router.route_customer_message(
                conversation.id, "customer text", sent.message.id, origin="cust"
            )

        stored = (await store.get(conversation.id)).messages
        assert [(m.sender, m.content) for m in stored] == [("agent", "agent says hi")]
        assert len(customer.events("message_received")) == 1
        assert agent.events("new_message") == []

    @pytest.mark.asyncio
    async def test_closed_conversation_rejected(self, store):
        router, conversation, customer, _ = await _setup(store)
        await store.update_status(
            conversation.id, status=ConversationStatus.CLOSED, is_live=False
        )
        with pytest.raises(InvalidTransitionError):
            await router.route_customer_message(conversation.id, "hello")
        assert customer.frames == []

    @pytest.mark.asyncio
    async def test_store_failure_broadcasts_nothing(self, store):
        router, conversation, customer, agent = await _setup(store)
        store._save = AsyncMock(side_effect=ConnectionError("db down"))

        with pytest.raises(UpstreamFailure):
            await router.route_customer_message(conversation.id, "hello")
        assert customer.frames == []
        assert agent.frames == []


# ── Agent messages ───────────────────────────────────────────────────


class TestAgentMessages:
    @pytest.mark.asyncio
    async def test_owner_delivered_to_room_only(self, store):
        router, conversation, customer, agent = await _setup(store)
        await store.update_status(
            conversation.id, status=ConversationStatus.HUMAN_CONTROLLED, agent_id="ag1"
        )

        routed = await router.route_agent_message(conversation.id, "Hi, I'm Sam", "ag1")

        assert routed.message.sender == "agent"
        assert routed.message.agent_id == "ag1"
        assert customer.events("message_received")[0]["agentId"] == "ag1"
        assert agent.frames == []

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, store):
        router, conversation, customer, _ = await _setup(store)
        await store.update_status(
            conversation.id, status=ConversationStatus.HUMAN_CONTROLLED, agent_id="ag1"
        )
        with pytest.raises(UnauthorizedError):
            await router.route_agent_message(conversation.id, "hijack", "ag2")
        assert customer.frames == []

    @pytest.mark.asyncio
    async def test_unowned_conversation_rejected(self, store):
        router, conversation, _, _ = await _setup(store)
        with pytest.raises(UnauthorizedError):
            await router.route_agent_message(conversation.id, "hello", "ag1")


# ── Automated messages ───────────────────────────────────────────────


class TestAutomatedMessages:
    @pytest.mark.asyncio
    async def test_stored_without_broadcast(self, store):
        router, conversation, customer, _ = await _setup(store)
        await store.update_status(conversation.id, status=ConversationStatus.AUTOMATED)

        routed = await router.route_automated_message(
            conversation.id, "Sure!", MessageMetadata(kind="reply")
        )

        assert routed is not None
        assert routed.message.metadata.kind == "reply"
        assert (await store.get(conversation.id)).messages[-1].content == "Sure!"
        assert customer.frames == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields",
        [
            {"status": ConversationStatus.SURVEY},
            {"status": ConversationStatus.HUMAN_CONTROLLED, "agent_id": "ag1"},
            {"status": ConversationStatus.CLOSED, "is_live": False},
        ],
    )
    async def test_dropped_unless_automated(self, store, fields):
        router, conversation, _, _ = await _setup(store)
        await store.update_status(conversation.id, **fields)

        assert await router.route_automated_message(conversation.id, "Sure!") is None
        assert (await store.get(conversation.id)).messages == []


class TestBroadcastHelpers:
    @pytest.mark.asyncio
    async def test_status_goes_to_agents(self, store):
        router, conversation, customer, agent = await _setup(store)
        await router.broadcast_status(conversation, isLive=True)
        assert agent.events("conversation_update") == [
            {"conversationId": conversation.id, "status": "survey", "isLive": True}
        ]
        assert customer.frames == []

    @pytest.mark.asyncio
    async def test_typing_goes_to_room(self, store):
        router, conversation, customer, agent = await _setup(store)
        await router.typing(conversation.id, True)
        assert customer.events("typing_indicator") == [{"isTyping": True, "sender": "automated"}]
        assert agent.frames == []
