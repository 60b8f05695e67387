"""Supabase-backed conversation store.

One row per conversation in ``live_conversations``. ``customer_info``,
``messages`` and ``tags`` are jsonb columns; everything else is a plain
column named after the model field. The supabase client is synchronous, so
every call runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, cast

from supabase import Client

from livechat.core.config import get_settings
from livechat.db.client import get_supabase
from livechat.schemas.conversations import Conversation

from .base import ConversationFilters, ConversationStore

logger = logging.getLogger(__name__)


def _to_row(conversation: Conversation) -> dict[str, Any]:
    return conversation.model_dump(mode="json")


def _from_row(row: dict[str, Any]) -> Conversation:
    return Conversation.model_validate(row)


def _search_filter(term: str) -> str:
    """PostgREST ``or`` filter: name or email contains ``term``, any case."""
    # Quoted values may hold the reserved characters , . : ( )
    pattern = "%" + term.replace("\\", "").replace('"', "") + "%"
    return ",".join(
        f'customer_info->>{field}.ilike."{pattern}"' for field in ("name", "email")
    )


class SupabaseConversationStore(ConversationStore):
    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        super().__init__()
        self._client = client
        self._table_name = table or get_settings().conversations_table

    @property
    def client(self) -> Client:
        """Lazy-load the shared Supabase client."""
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _table(self):
        return self.client.table(self._table_name)

    async def _run(self, fn: Callable[[], Any]) -> list[dict[str, Any]]:
        result = await asyncio.to_thread(fn)
        return cast(list[dict[str, Any]], result.data or [])

    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        rows = await self._run(
            lambda: self._table().select("*").eq("id", conversation_id).limit(1).execute()
        )
        return _from_row(rows[0]) if rows else None

    async def _insert(self, conversation: Conversation) -> None:
        row = _to_row(conversation)
        await self._run(lambda: self._table().insert(row).execute())

    async def _save(self, conversation: Conversation) -> None:
        row = _to_row(conversation)
        rows = await self._run(
            lambda: self._table().update(row).eq("id", conversation.id).execute()
        )
        if not rows:
            raise LookupError(f"Conversation {conversation.id} vanished during save")

    async def _find_live_by_customer(self, customer_id: str) -> Optional[Conversation]:
        rows = await self._run(
            lambda: self._table()
            .select("*")
            .eq("customer_id", customer_id)
            .eq("is_live", True)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _from_row(rows[0]) if rows else None

    async def _page(
        self,
        filters: ConversationFilters,
        search: Optional[str],
        order_by: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Conversation], int]:
        def run():
            query = self._table().select("*", count="exact")
            if filters.status is not None:
                query = query.eq("status", filters.status.value)
            if filters.is_live is not None:
                query = query.eq("is_live", filters.is_live)
            if filters.agent_id is not None:
                query = query.eq("agent_id", filters.agent_id)
            if filters.customer_id is not None:
                query = query.eq("customer_id", filters.customer_id)
            if search:
                query = query.or_(_search_filter(search))

            # Order and paginate
            query = query.order(order_by, desc=True)
            query = query.range(offset, offset + limit - 1)
            return query.execute()

        result = await asyncio.to_thread(run)
        rows = cast(list[dict[str, Any]], result.data or [])
        return [_from_row(row) for row in rows], result.count or 0
