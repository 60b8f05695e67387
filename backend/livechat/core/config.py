"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

# .env lives at the project root (one level above backend/)
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"

DEFAULT_SYSTEM_PROMPT = """You are a helpful customer service representative for our store. You should:

1. Be friendly, professional, and helpful
2. Answer questions about products based on the product information provided
3. If you don't know something specific, politely say so and offer to connect them with a human agent
4. Keep responses concise but informative
5. Use a conversational tone that feels natural
6. If asked about shipping, returns, or policies, provide general helpful guidance but suggest contacting support for specifics"""

DEFAULT_HANDOFF_MESSAGE = "Thanks! We're transferring you over to a rep!"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Live Chat Backend"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = "*"

    # Session store
    conversation_store: Literal["memory", "supabase"] = "memory"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    conversations_table: str = "live_conversations"

    # Reply generation
    openai_api_key: str | None = None
    openai_chat_model: str = "gpt-4"
    reply_max_tokens: int = 300
    reply_temperature: float = 0.7
    reply_timeout_seconds: float = 30.0
    history_window: int = 10
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Typing pace emulation
    # delay = max(words / (base_wpm +/- jitter) * 60000 + base_delay, min_delay)
    typing_base_wpm: float = 120.0
    typing_wpm_jitter: float = 10.0
    typing_base_delay_ms: int = 500
    typing_min_delay_ms: int = 800
    fallback_delay_ms: int = 2000

    handoff_message: str = DEFAULT_HANDOFF_MESSAGE
    fallback_message: str = (
        "I'm having trouble processing your request right now. "
        "Let me connect you with a human agent who can help you better."
    )

    class Config:
        env_file = str(_ENV_FILE)
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
