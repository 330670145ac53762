# app/store/models.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from app.domain.common.types import CamelModel, RoomStatus


class RoomStore(CamelModel):
    id: str
    code: str
    host_id: str
    status: RoomStatus = "WAITING"
    max_players: int = 4
    created_at: int
    started_at: int = 0
    last_activity: int


class RoomPlayerStore(CamelModel):
    user_id: str
    is_spectator: bool = False
    joined_at: int
    seq: int = 0


class UserStore(CamelModel):
    id: str
    name: str = ""
    wins: int = 0
    losses: int = 0


class MatchRecord(CamelModel):
    """
    Compact history entry, appended when a match ends.
    """
    room_id: str
    winner_id: Optional[str] = None
    scores: Dict[str, int] = Field(default_factory=dict)
    teams: Dict[str, List[Optional[Dict[str, Any]]]] = Field(default_factory=dict)
    ts: int
