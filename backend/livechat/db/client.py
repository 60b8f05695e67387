"""Shared supabase client for the conversation store."""

import threading
from typing import Optional

from supabase import Client, create_client

from livechat.core.config import Settings, get_settings

_client: Optional[Client] = None
_client_lock = threading.Lock()


def get_supabase(settings: Optional[Settings] = None) -> Client:
    """Process-wide supabase client, created on first use.

    Store calls run in worker threads, so creation is guarded by a lock.
    Raises ``RuntimeError`` when the project URL or service key is missing.
    """
    global _client
    with _client_lock:
        if _client is None:
            settings = settings or get_settings()
            if not (settings.supabase_url and settings.supabase_service_role_key):
                raise RuntimeError(
                    "conversation_store=supabase needs SUPABASE_URL and "
                    "SUPABASE_SERVICE_ROLE_KEY"
                )
            _client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        return _client
