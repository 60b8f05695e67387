"""Shared fixtures for the chat core tests."""

import asyncio
from typing import Any

import pytest

from livechat.chat.service import ChatService
from livechat.core.config import Settings
from livechat.services.reply_generator import GeneratedReply
from livechat.store.memory import InMemoryConversationStore


# ── Fakes ───────────────────────────────────────────────────────────


class FakeSocket:
    """Records every frame pushed to it."""

    def __init__(self, fail: bool = False):
        self.frames: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    def events(self, name: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.frames if f["event"] == name]

    def names(self) -> list[str]:
        return [f["event"] for f in self.frames]


class StubGenerator:
    """Reply generator returning a canned reply (or raising)."""

    def __init__(self, text: str = "Happy to help!", delay_ms: int = 1200):
        self.reply = GeneratedReply(
            text=text, render_delay_ms=delay_ms, meta={"model": "stub", "tokens_used": 7}
        )
        self.error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    async def generate(self, message, history, customer_info):
        self.calls.append({"message": message, "history": history, "customer_info": customer_info})
        if self.error is not None:
            raise self.error
        return self.reply


class GatedSleep:
    """Stands in for asyncio.sleep; blocks until ``release`` is set."""

    def __init__(self, blocking: bool = True):
        self.calls: list[float] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        if not blocking:
            self.release.set()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.started.set()
        await self.release.wait()


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    return Settings(_env_file=None, conversation_store="memory", reply_timeout_seconds=5)


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def generator():
    return StubGenerator()


@pytest.fixture
def sleep():
    return GatedSleep(blocking=False)


@pytest.fixture
def service(store, generator, settings, sleep):
    return ChatService(store=store, generator=generator, settings=settings, sleep=sleep)


def connect(service: ChatService, connection_id: str, fail: bool = False) -> FakeSocket:
    socket = FakeSocket(fail=fail)
    service.connect(connection_id, socket)
    return socket


def frame(event: str, **data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


async def join_customer(service: ChatService, connection_id: str = "cust-1", customer_id: str = "c1"):
    """Connect a customer socket and join; returns (socket, conversation_id)."""
    socket = connect(service, connection_id)
    await service.dispatch(connection_id, frame("join_chat", customerId=customer_id, customerInfo={}))
    joined = socket.events("conversation_joined")
    assert joined, socket.frames
    return socket, joined[-1]["conversationId"]


async def complete_survey(service: ChatService, connection_id: str = "cust-1"):
    await service.dispatch(connection_id, frame("survey_response", field="name", value="Al"))
    await service.dispatch(connection_id, frame("survey_response", field="email", value="a@b.com"))


async def join_agent(service: ChatService, connection_id: str, agent_id: str) -> FakeSocket:
    socket = connect(service, connection_id)
    await service.dispatch(connection_id, frame("join_admin", agentId=agent_id))
    return socket
