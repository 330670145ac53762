# app/domain/common/fsm.py
from __future__ import annotations

from app.domain.common.types import GameStatus, RoomStatus


def can_transition_to(current: RoomStatus, target: RoomStatus) -> bool:
    """
    Validate room-record transitions.
    FINISHED -> DRAFTING is a rematch started by the host.
    """
    transitions: dict[RoomStatus, list[RoomStatus]] = {
        "WAITING": ["DRAFTING"],
        "DRAFTING": ["FINISHED"],
        "FINISHED": ["DRAFTING"],
    }
    return target in transitions.get(current, [])


def can_transition_game(current: GameStatus, target: GameStatus) -> bool:
    """
    Validate in-blob game status transitions.
    DRAFTING -> FINISHED happens when the acting client grades before its
    GRADING write went out.
    """
    transitions: dict[GameStatus, list[GameStatus]] = {
        "SETUP": ["DRAFTING"],
        "DRAFTING": ["GRADING", "FINISHED"],
        "GRADING": ["FINISHED"],
        "FINISHED": [],
    }
    return target in transitions.get(current, [])
