"""Message identifier generation."""
from __future__ import annotations

import threading
import time

_lock = threading.Lock()
_last_token = 0


def new_message_id() -> str:
    """Return a time-derived id that is strictly increasing within this process."""

    global _last_token
    with _lock:
        token = max(time.time_ns(), _last_token + 1)
        _last_token = token
    return str(token)
