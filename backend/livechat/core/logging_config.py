"""Process-wide logging setup."""

import logging
import sys

from .config import get_settings

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Attach a stdout handler to the root logger at the configured level.

    Safe to call more than once; the handler is only added the first time.
    """
    settings = get_settings()
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    if any(getattr(h, "_livechat", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._livechat = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # httpx logs every OpenAI/Supabase request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
