# app/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import Field

from app.domain.common.types import CamelModel, RoomAction, RoomStatus


# =========================
# Incoming (Client -> Server)
# =========================

class InCreateRoom(CamelModel):
    host_id: str = Field(min_length=1, max_length=64)
    name: str = Field(default="", max_length=32)


class InJoinRoom(CamelModel):
    code: str = Field(min_length=1, max_length=16)
    user_id: str = Field(min_length=1, max_length=64)
    is_spectator: bool = False
    name: str = Field(default="", max_length=32)


class InActionBase(CamelModel):
    action: RoomAction
    user_id: str = Field(min_length=1, max_length=64)


class InStart(InActionBase):
    action: Literal["start"] = "start"


class InInitState(InActionBase):
    """Create the shared state only if none exists yet (host, first load)."""
    action: Literal["initState"] = "initState"
    data: Dict[str, Any]


class InUpdateState(InActionBase):
    action: Literal["updateState"] = "updateState"
    data: Dict[str, Any]


class InEnd(InActionBase):
    """data is the client-computed {winnerId, scores, logs}; the server recomputes it."""
    action: Literal["end"] = "end"
    data: Dict[str, Any] = Field(default_factory=dict)


class InLeave(InActionBase):
    action: Literal["leave"] = "leave"


class InChatData(CamelModel):
    text: str = Field(min_length=1, max_length=280)


class InChatMessage(InActionBase):
    action: Literal["chatMessage"] = "chatMessage"
    data: InChatData


IncomingAction = Union[
    InStart,
    InInitState,
    InUpdateState,
    InEnd,
    InLeave,
    InChatMessage,
]


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(CamelModel):
    type: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutRoomView(OutBase):
    """Room + players + gameState, the getRoomState shape."""
    type: Literal["room"] = "room"
    id: str
    code: str
    host_id: str
    status: RoomStatus
    max_players: int
    created_at: int
    started_at: int = 0
    players: List[Dict[str, Any]] = Field(default_factory=list)
    game_state: Optional[Dict[str, Any]] = None


class OutLeft(OutBase):
    type: Literal["left"] = "left"
    success: bool = True
    room_deleted: bool = False


# ---- Room channel events ----

class OutGameStarted(OutBase):
    type: Literal["game-started"] = "game-started"
    started_at: int = 0


class OutStateUpdated(OutBase):
    type: Literal["state-updated"] = "state-updated"
    state: Dict[str, Any] = Field(default_factory=dict)
    truncated: bool = False


class OutGameEnded(OutBase):
    type: Literal["game-ended"] = "game-ended"
    results: Dict[str, Any]


class OutPlayerJoined(OutBase):
    type: Literal["player-joined"] = "player-joined"
    user_id: str
    room: Dict[str, Any] = Field(default_factory=dict)


class OutPlayerLeft(OutBase):
    type: Literal["player-left"] = "player-left"
    user_id: str
    host_id: Optional[str] = None


class OutChatMessage(OutBase):
    type: Literal["chat-message"] = "chat-message"
    message: Dict[str, Any]


OutgoingEvent = Union[
    OutError,
    OutRoomView,
    OutLeft,
    OutGameStarted,
    OutStateUpdated,
    OutGameEnded,
    OutPlayerJoined,
    OutPlayerLeft,
    OutChatMessage,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_ACTION = {
    "start": InStart,
    "initState": InInitState,
    "updateState": InUpdateState,
    "end": InEnd,
    "leave": InLeave,
    "chatMessage": InChatMessage,
}


def parse_action(payload: Dict[str, Any]) -> IncomingAction:
    """
    Convert raw {action, data, userId} -> validated action model.
    Raises ValidationError (a ValueError) if invalid.
    """
    a = payload.get("action")
    if not isinstance(a, str):
        raise ValueError("Missing/invalid action")

    cls = _INCOMING_BY_ACTION.get(a)
    if cls is None:
        raise ValueError(f"Unknown action: {a}")

    return cls.model_validate(payload)


def dump_event(event: OutBase) -> Dict[str, Any]:
    return event.model_dump(by_alias=True, mode="json")
