"""Automated replies: typing indicator, generation, paced reveal, broadcast.

Each eligible customer message gets its own background task. The render
delay is a suspension point during which an agent may take over or the
conversation may close; the reply is therefore written only if the
conversation, re-read under the store's write lock, is still ``automated``.
Nothing cancels an in-flight reply from outside; it discards itself.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from livechat.core.config import Settings, get_settings
from livechat.schemas.conversations import Conversation, CustomerInfo
from livechat.schemas.messages import Message, MessageMetadata
from livechat.services.reply_generator import GeneratedReply, ReplyGenerator, fallback_reply
from livechat.store.base import ConversationStore

from .router import MessageRouter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AutoReplyOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        router: MessageRouter,
        generator: ReplyGenerator,
        settings: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.router = router
        self.generator = generator
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, conversation: Conversation, message: Message) -> asyncio.Task:
        """Start answering ``message`` in the background."""
        task = asyncio.create_task(
            self.respond(conversation.id, message, conversation),
            name=f"auto-reply:{conversation.id}:{message.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled reply to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding replies and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    async def respond(
        self,
        conversation_id: str,
        message: Message,
        conversation: Optional[Conversation] = None,
    ) -> Optional[Message]:
        """Answer one customer message. Returns the stored reply, if any.

        Typing stopped is emitted exactly once on every path.
        """
        typing_stopped = False
        await self.router.typing(conversation_id, True)
        try:
            if conversation is None:
                conversation = await self.store.get(conversation_id)
            history = conversation.history_before(message.id, self.settings.history_window)
            reply = await self._generate(message.content, history, conversation.customer_info)

            if not reply.is_fallback:
                await self._sleep(reply.render_delay_ms / 1000)

            routed = await self.router.route_automated_message(
                conversation_id, reply.text, self._metadata(reply)
            )
            if routed is None:
                logger.info(
                    "Discarded automated reply for conversation %s: no longer automated",
                    conversation_id,
                )
                return None

            await self.router.typing(conversation_id, False)
            typing_stopped = True
            await self.router.broadcast_message(routed.conversation, routed.message)
            return routed.message
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Automated reply failed for conversation %s", conversation_id)
            return None
        finally:
            if not typing_stopped:
                await self.router.typing(conversation_id, False)

    async def _generate(
        self, content: str, history: list[Message], customer_info: CustomerInfo
    ) -> GeneratedReply:
        try:
            return await asyncio.wait_for(
                self.generator.generate(content, history, customer_info),
                timeout=self.settings.reply_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Reply generation timed out after %.1fs", self.settings.reply_timeout_seconds
            )
        except Exception:
            logger.exception("Reply generator raised")
        return fallback_reply(self.settings)

    @staticmethod
    def _metadata(reply: GeneratedReply) -> MessageMetadata:
        tokens = reply.meta.get("tokens_used")
        model = reply.meta.get("model")
        return MessageMetadata(
            kind="fallback" if reply.is_fallback else "reply",
            render_delay_ms=reply.render_delay_ms,
            model=str(model) if model is not None else None,
            tokens_used=int(tokens) if tokens is not None else None,
        )
