# app/domain/common/validation.py
from __future__ import annotations

from typing import Iterable, List, Optional

from app.store.models import RoomPlayerStore, RoomStore


def is_host(room: Optional[RoomStore], user_id: Optional[str]) -> bool:
    """Check if user hosts the room."""
    return room is not None and user_id is not None and room.host_id == user_id


def is_member(player: Optional[RoomPlayerStore]) -> bool:
    """Check if a RoomPlayer row exists for the caller."""
    return player is not None


def is_active_player(player: Optional[RoomPlayerStore]) -> bool:
    """Members that draft; spectators never take a turn or get scored."""
    return player is not None and not player.is_spectator


def active_players(players: Iterable[RoomPlayerStore]) -> List[RoomPlayerStore]:
    """Non-spectators in join order."""
    return sorted((p for p in players if not p.is_spectator), key=lambda p: (p.seq, p.joined_at, p.user_id))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()
