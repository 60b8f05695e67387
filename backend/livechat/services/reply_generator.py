"""Automated reply generation.

``ReplyGenerator`` is the contract the orchestrator depends on;
``OpenAIReplyGenerator`` is the production implementation. Generators should
not raise: on failure they return a reply flagged ``is_fallback``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from livechat.chat.pacing import typing_delay_ms
from livechat.core.config import Settings, get_settings
from livechat.core.llm import LLM
from livechat.schemas.conversations import CustomerInfo
from livechat.schemas.messages import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedReply:
    text: str
    render_delay_ms: int
    meta: dict[str, Any] = field(default_factory=dict)
    is_fallback: bool = False


class ReplyGenerator(Protocol):
    async def generate(
        self,
        message: str,
        history: list[Message],
        customer_info: CustomerInfo,
    ) -> GeneratedReply: ...


def fallback_reply(settings: Optional[Settings] = None) -> GeneratedReply:
    settings = settings or get_settings()
    return GeneratedReply(
        text=settings.fallback_message,
        render_delay_ms=settings.fallback_delay_ms,
        meta={"model": "fallback", "tokens_used": 0},
        is_fallback=True,
    )


def build_system_prompt(base_prompt: str, customer_info: CustomerInfo) -> str:
    prompt = base_prompt
    if customer_info.name:
        prompt += f"\n\nCustomer's name is {customer_info.name}."
    return prompt


def format_history(history: list[Message]) -> list[dict[str, str]]:
    """Map stored messages onto chat roles: the customer is the user."""
    return [
        {
            "role": "user" if msg.sender == "customer" else "assistant",
            "content": msg.content,
        }
        for msg in history
    ]


class OpenAIReplyGenerator:
    """Answers customers with an OpenAI chat model."""

    def __init__(self, llm: Optional[LLM] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.llm = llm or LLM(
            api_key=self.settings.openai_api_key,
            model=self.settings.openai_chat_model,
        )

    def _complete(self, messages: list[dict[str, str]]) -> tuple[str, int, str]:
        text = self.llm.chat(
            messages=messages,
            temperature=self.settings.reply_temperature,
            max_tokens=self.settings.reply_max_tokens,
        )
        usage = self.llm.last_usage
        tokens = usage.total if usage else 0
        model = (usage.model if usage and usage.model else None) or self.llm.model
        return text, tokens, model

    async def generate(
        self,
        message: str,
        history: list[Message],
        customer_info: CustomerInfo,
    ) -> GeneratedReply:
        window = history[-self.settings.history_window:] if self.settings.history_window > 0 else []
        messages = [
            {"role": "system", "content": build_system_prompt(self.settings.system_prompt, customer_info)},
            *format_history(window),
            {"role": "user", "content": message},
        ]

        try:
            text, tokens, model = await asyncio.to_thread(self._complete, messages)
        except Exception:
            logger.exception("OpenAI reply generation failed")
            return fallback_reply(self.settings)

        text = text.strip()
        if not text:
            logger.warning("OpenAI returned an empty reply, using fallback")
            return fallback_reply(self.settings)

        return GeneratedReply(
            text=text,
            render_delay_ms=typing_delay_ms(text, self.settings),
            meta={"model": model, "tokens_used": tokens},
        )
