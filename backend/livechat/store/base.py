"""Session store contract.

Backends implement a handful of primitives (load, insert, save, queries).
The public operations live here so every backend gets the same guarantees:

- every read-modify-write of one conversation runs under that
  conversation's lock, so concurrent appends never lose updates;
- resolve-or-create runs under the customer's lock, so a customer never has
  two live conversations;
- ``updated_at`` is refreshed on every write;
- backend exceptions surface as ``UpstreamFailure``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar

from livechat.chat import state_machine
from livechat.core.config import DEFAULT_HANDOFF_MESSAGE
from livechat.core.errors import ChatError, NotFoundError, UpstreamFailure, ValidationFailure
from livechat.schemas.conversations import Conversation, ConversationStatus, CustomerInfo
from livechat.schemas.messages import Message, utcnow

from .locks import KeyedLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[Conversation], Optional[Conversation]]


@dataclass(frozen=True)
class AppendResult:
    """Outcome of ``append_message``.

    ``message`` is the stored message: the new one, or the earlier copy when
    the id was already present (``appended`` is then False).
    """

    conversation: Conversation
    message: Message
    appended: bool


@dataclass(frozen=True)
class UpdateResult:
    """Before/after snapshot of an atomic update."""

    before: Conversation
    after: Conversation

    @property
    def changed(self) -> bool:
        return self.before is not self.after


@dataclass(frozen=True)
class ConversationFilters:
    status: Optional[ConversationStatus] = None
    is_live: Optional[bool] = None
    agent_id: Optional[str] = None
    customer_id: Optional[str] = None


class ConversationStore(ABC):
    """Abstract conversation repository with per-conversation serialization."""

    def __init__(self) -> None:
        self._conversation_locks = KeyedLock()
        self._customer_locks = KeyedLock()

    # ── Backend primitives ──────────────────────────────────────────

    @abstractmethod
    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        """Fetch one conversation, or None."""

    @abstractmethod
    async def _insert(self, conversation: Conversation) -> None:
        """Persist a new conversation."""

    @abstractmethod
    async def _save(self, conversation: Conversation) -> None:
        """Overwrite an existing conversation."""

    @abstractmethod
    async def _find_live_by_customer(self, customer_id: str) -> Optional[Conversation]:
        """Newest conversation of ``customer_id`` with ``is_live`` set."""

    @abstractmethod
    async def _page(
        self,
        filters: ConversationFilters,
        search: Optional[str],
        order_by: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Conversation], int]:
        """One page of matches, newest ``order_by`` first, plus the total count.

        ``search`` matches the customer's name or email, case-insensitively.
        """

    async def _backend(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except ChatError:
            raise
        except Exception as exc:
            logger.exception("Session store %s failed", operation)
            raise UpstreamFailure(f"Session store unavailable during {operation}") from exc

    async def _write(self, conversation: Conversation, insert: bool = False) -> Conversation:
        problems = conversation.invariant_violations()
        if problems:
            raise ValidationFailure(
                f"Refusing to store conversation {conversation.id}: {'; '.join(problems)}"
            )
        stamped = conversation.model_copy(update={"updated_at": utcnow()})
        if insert:
            await self._backend("insert", lambda: self._insert(stamped))
        else:
            await self._backend("save", lambda: self._save(stamped))
        return stamped

    # ── Reads ───────────────────────────────────────────────────────

    async def find_by_id(self, conversation_id: str) -> Optional[Conversation]:
        return await self._backend("load", lambda: self._load(conversation_id))

    async def get(self, conversation_id: str) -> Conversation:
        """Like ``find_by_id`` but raises ``NotFoundError``."""
        conversation = await self.find_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def find_live_by_customer(self, customer_id: str) -> Optional[Conversation]:
        return await self._backend(
            "find_live_by_customer", lambda: self._find_live_by_customer(customer_id)
        )

    async def list_conversations(
        self,
        status: Optional[ConversationStatus] = None,
        is_live: Optional[bool] = None,
        agent_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Conversation], int]:
        """Filtered page of conversations, most recently updated first.

        ``search`` matches the customer's name or email, case-insensitively.
        Returns the page and the total number of matches.
        """
        filters = ConversationFilters(status=status, is_live=is_live, agent_id=agent_id)
        return await self._backend(
            "query",
            lambda: self._page(filters, search or None, "updated_at", limit, offset),
        )

    async def list_by_customer(self, customer_id: str, limit: int = 10) -> list[Conversation]:
        """A customer's conversations, newest first."""
        filters = ConversationFilters(customer_id=customer_id)
        rows, _ = await self._backend(
            "query", lambda: self._page(filters, None, "created_at", limit, 0)
        )
        return rows

    # ── Writes ──────────────────────────────────────────────────────

    async def create(
        self,
        customer_id: str,
        customer_info: Optional[CustomerInfo] = None,
        handoff_text: str = DEFAULT_HANDOFF_MESSAGE,
    ) -> Conversation:
        """Start a new conversation in ``survey``.

        When ``customer_info`` already holds every survey field the
        conversation starts ``automated`` with ``handoff_text`` as its first
        message. Raises ``ValidationFailure`` if the customer already has a
        live one; use ``get_or_create_live`` to reuse it instead.
        """
        async with self._customer_locks.hold(customer_id):
            if await self.find_live_by_customer(customer_id) is not None:
                raise ValidationFailure(
                    f"Customer {customer_id} already has a live conversation"
                )
            return await self._create(customer_id, customer_info, handoff_text)

    async def get_or_create_live(
        self,
        customer_id: str,
        customer_info: Optional[CustomerInfo] = None,
        handoff_text: str = DEFAULT_HANDOFF_MESSAGE,
    ) -> tuple[Conversation, bool]:
        """Return the customer's live conversation, creating one if needed.

        The second element is True when a new conversation was created.
        """
        async with self._customer_locks.hold(customer_id):
            existing = await self.find_live_by_customer(customer_id)
            if existing is not None:
                return existing, False
            return await self._create(customer_id, customer_info, handoff_text), True

    async def _create(
        self, customer_id: str, customer_info: Optional[CustomerInfo], handoff_text: str
    ) -> Conversation:
        conversation = state_machine.start(
            Conversation(customer_id=customer_id, customer_info=customer_info or CustomerInfo()),
            utcnow(),
            handoff_text,
        )
        conversation = await self._write(conversation, insert=True)
        logger.info("Created conversation %s for customer %s", conversation.id, customer_id)
        return conversation

    async def append_message(
        self,
        conversation_id: str,
        message: Message,
        guard: Optional[Callable[[Conversation], None]] = None,
    ) -> AppendResult:
        """Append ``message`` atomically. Idempotent on ``message.id``.

        ``guard`` runs against the freshly loaded conversation, under the
        lock, before the append; it rejects the write by raising.
        Duplicates are detected before the guard runs. An id already taken
        by a message from another sender raises ``ValidationFailure``.
        """
        async with self._conversation_locks.hold(conversation_id):
            conversation = await self.get(conversation_id)
            existing = conversation.get_message(message.id)
            if existing is not None:
                if existing.sender != message.sender:
                    raise ValidationFailure(f"messageId {message.id} already used")
                return AppendResult(conversation, existing, appended=False)
            if guard is not None:
                guard(conversation)
            updated = conversation.model_copy(
                update={"messages": [*conversation.messages, message]}
            )
            saved = await self._write(updated)
            return AppendResult(saved, message, appended=True)

    async def update(self, conversation_id: str, mutate: Mutation) -> UpdateResult:
        """Load, mutate and save one conversation atomically.

        ``mutate`` returns the new conversation, or None to leave it as is
        (nothing is written in that case). Errors it raises propagate and
        nothing is written.
        """
        async with self._conversation_locks.hold(conversation_id):
            before = await self.get(conversation_id)
            changed = mutate(before)
            if changed is None:
                return UpdateResult(before, before)
            after = await self._write(changed)
            return UpdateResult(before, after)

    async def update_status(self, conversation_id: str, **fields: Any) -> Conversation:
        """Set top-level fields (status, agent_id, is_live, ...) atomically."""
        result = await self.update(
            conversation_id, lambda c: c.model_copy(update=fields)
        )
        return result.after
