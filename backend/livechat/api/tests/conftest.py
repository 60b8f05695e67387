"""Shared fixtures for the API tests."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from livechat.chat.service import ChatService
from livechat.core.config import Settings
from livechat.main import create_app
from livechat.services.reply_generator import GeneratedReply
from livechat.store.memory import InMemoryConversationStore


class CannedGenerator:
    async def generate(self, message, history, customer_info):
        return GeneratedReply(text="Happy to help!", render_delay_ms=900, meta={"model": "stub"})


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def service():
    return ChatService(
        store=InMemoryConversationStore(),
        generator=CannedGenerator(),
        settings=Settings(_env_file=None),
        sleep=no_sleep,
    )


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


def run(coro):
    """Drive a store coroutine from a synchronous test."""
    return asyncio.run(coro)
