"""Core module - configuration, errors, logging and LLM utilities."""

from .config import get_settings, Settings
from .errors import (
    ChatError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    UpstreamFailure,
    ValidationFailure,
)

__all__ = [
    "get_settings",
    "Settings",
    "ChatError",
    "InvalidTransitionError",
    "NotFoundError",
    "UnauthorizedError",
    "UpstreamFailure",
    "ValidationFailure",
]
