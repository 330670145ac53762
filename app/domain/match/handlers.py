# app/domain/match/handlers.py
from __future__ import annotations

from app.domain.match.handlers_start import handle_start, handle_init_state
from app.domain.match.handlers_state import handle_update_state
from app.domain.match.handlers_end import handle_end
from app.domain.match.handlers_chat import handle_chat_message

__all__ = [
    "handle_start",
    "handle_init_state",
    "handle_update_state",
    "handle_end",
    "handle_chat_message",
]
