# app/domain/common/types.py
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

RoomStatus = Literal["WAITING", "DRAFTING", "FINISHED"]
GameStatus = Literal["SETUP", "DRAFTING", "GRADING", "FINISHED"]

RoomAction = Literal["start", "initState", "updateState", "end", "leave", "chatMessage"]


class CamelModel(BaseModel):
    """
    Base for anything that crosses the wire.
    Python side uses snake_case, JSON side uses camelCase (playerTeams, currentTurn, ...).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
