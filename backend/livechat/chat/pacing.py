"""Typing-pace emulation for automated replies."""

import random
from typing import Optional

from livechat.core.config import Settings, get_settings


def typing_delay_ms(
    text: str,
    settings: Optional[Settings] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """How long to show the typing indicator before revealing ``text``.

    ``max(words / wpm * 60000 + base_delay, min_delay)`` where ``wpm`` is the
    base speed plus uniform jitter in ``[-jitter, +jitter]``.
    """
    settings = settings or get_settings()
    rng = rng or random
    words = len(text.split())
    wpm = settings.typing_base_wpm + rng.uniform(
        -settings.typing_wpm_jitter, settings.typing_wpm_jitter
    )
    wpm = max(wpm, 1.0)
    typing_ms = words / wpm * 60_000 + settings.typing_base_delay_ms
    return int(max(typing_ms, settings.typing_min_delay_ms))
