"""Store module - conversation persistence behind a lock-guarded contract."""

from livechat.core.config import Settings

from .base import AppendResult, ConversationFilters, ConversationStore, UpdateResult
from .memory import InMemoryConversationStore


def build_store(settings: Settings) -> ConversationStore:
    """Instantiate the backend selected by ``conversation_store``."""
    if settings.conversation_store == "supabase":
        from .supabase import SupabaseConversationStore

        return SupabaseConversationStore(table=settings.conversations_table)
    return InMemoryConversationStore()


__all__ = [
    "AppendResult",
    "ConversationFilters",
    "ConversationStore",
    "InMemoryConversationStore",
    "UpdateResult",
    "build_store",
]
