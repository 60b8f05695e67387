"""Services module - external collaborators (reply generation)."""

from .reply_generator import (
    GeneratedReply,
    OpenAIReplyGenerator,
    ReplyGenerator,
    fallback_reply,
)

__all__ = ["GeneratedReply", "OpenAIReplyGenerator", "ReplyGenerator", "fallback_reply"]
