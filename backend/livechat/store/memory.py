"""In-process conversation store. Default backend and the one tests use."""

from typing import Optional

from livechat.schemas.conversations import Conversation

from .base import ConversationFilters, ConversationStore


class InMemoryConversationStore(ConversationStore):
    """Keeps deep copies so callers can never mutate stored state."""

    def __init__(self) -> None:
        super().__init__()
        self._rows: dict[str, Conversation] = {}

    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        row = self._rows.get(conversation_id)
        return row.model_copy(deep=True) if row is not None else None

    async def _insert(self, conversation: Conversation) -> None:
        if conversation.id in self._rows:
            raise KeyError(f"Duplicate conversation id {conversation.id}")
        self._rows[conversation.id] = conversation.model_copy(deep=True)

    async def _save(self, conversation: Conversation) -> None:
        if conversation.id not in self._rows:
            raise KeyError(f"Unknown conversation id {conversation.id}")
        self._rows[conversation.id] = conversation.model_copy(deep=True)

    async def _find_live_by_customer(self, customer_id: str) -> Optional[Conversation]:
        live = [
            c for c in self._rows.values()
            if c.customer_id == customer_id and c.is_live
        ]
        if not live:
            return None
        return max(live, key=lambda c: c.created_at).model_copy(deep=True)

    async def _page(
        self,
        filters: ConversationFilters,
        search: Optional[str],
        order_by: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Conversation], int]:
        rows = [
            c for c in self._rows.values()
            if (filters.status is None or c.status == filters.status)
            and (filters.is_live is None or c.is_live == filters.is_live)
            and (filters.agent_id is None or c.agent_id == filters.agent_id)
            and (filters.customer_id is None or c.customer_id == filters.customer_id)
        ]
        if search:
            needle = search.lower()
            rows = [
                c for c in rows
                if needle in (c.customer_info.name or "").lower()
                or needle in (c.customer_info.email or "").lower()
            ]
        rows.sort(key=lambda c: getattr(c, order_by), reverse=True)
        page = rows[offset:offset + limit]
        return [c.model_copy(deep=True) for c in page], len(rows)

    def __len__(self) -> int:
        return len(self._rows)
