from __future__ import annotations

from .handlers import (
    handle_start,
    handle_init_state,
    handle_update_state,
    handle_end,
    handle_chat_message,
)

__all__ = [
    "handle_start",
    "handle_init_state",
    "handle_update_state",
    "handle_end",
    "handle_chat_message",
]
