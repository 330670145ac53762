# app/domain/draft/models.py
from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from app.domain.common.types import CamelModel

logger = logging.getLogger(__name__)

ROLES = ("CAPTAIN", "VICE CAPTAIN", "TANK", "DUELIST", "SUPPORT")
ROLE_KEYS = ("captain", "viceCaptain", "tank", "duelist", "support")

ROSTER_SIZE = len(ROLE_KEYS)
MAX_ROUNDS = ROSTER_SIZE
INITIAL_SKIPS = 2
MIN_POOL_SIZE = 10
RATING_MIN = 1
RATING_MAX = 5


def derive_role_stats(char_id: int, name: str) -> "RoleStats":
    """
    Stable fallback ratings for characters that never got curated ones.
    Same id+name always yields the same ratings.
    """
    seed = int(char_id) + len(name or "")
    ratings = {key: ((seed + n) % RATING_MAX) + 1 for n, key in enumerate(ROLE_KEYS)}
    return RoleStats.model_validate(ratings)


class RoleStats(CamelModel):
    model_config = ConfigDict(frozen=True)

    captain: int = RATING_MIN
    vice_captain: int = RATING_MIN
    tank: int = RATING_MIN
    duelist: int = RATING_MIN
    support: int = RATING_MIN
    reason: Optional[str] = None

    @field_validator("captain", "vice_captain", "tank", "duelist", "support", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> int:
        try:
            n = int(v)
        except (TypeError, ValueError):
            return RATING_MIN
        return max(RATING_MIN, min(RATING_MAX, n))

    def rating(self, slot_index: int) -> int:
        return int(getattr(self, _ROLE_ATTRS[slot_index]))


_ROLE_ATTRS = ("captain", "vice_captain", "tank", "duelist", "support")


class CharacterStats(CamelModel):
    model_config = ConfigDict(frozen=True)

    favorites: int = 0
    role_stats: Optional[RoleStats] = None

    @field_validator("favorites", mode="before")
    @classmethod
    def _favorites(cls, v: Any) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class Character(CamelModel):
    """
    Catalog entity. Immutable; roleStats is always populated after validation.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    image_url: str = ""
    anime_universe: str = ""
    stats: CharacterStats = Field(default_factory=CharacterStats)

    @model_validator(mode="before")
    @classmethod
    def _fill_role_stats(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        stats = data.get("stats")
        if isinstance(stats, CharacterStats):
            stats = stats.model_dump(by_alias=True)
        stats = dict(stats) if isinstance(stats, dict) else {}
        if not stats.get("roleStats") and not stats.get("role_stats"):
            try:
                char_id = int(data.get("id") or 0)
            except (TypeError, ValueError):
                char_id = 0
            stats["roleStats"] = derive_role_stats(char_id, str(data.get("name") or "")).model_dump(by_alias=True)
        return {**data, "stats": stats}

    @property
    def role_stats(self) -> RoleStats:
        return self.stats.role_stats  # type: ignore[return-value]


class ChatEntry(CamelModel):
    user_id: str
    text: str
    ts: int


class MatchResults(CamelModel):
    winner_id: Optional[str] = None
    scores: Dict[str, int] = Field(default_factory=dict)
    powers: Dict[str, float] = Field(default_factory=dict)
    logs: List[str] = Field(default_factory=list)


Roster = List[Optional[Character]]


class _StateBase(CamelModel):
    selected_universes: List[str] = Field(default_factory=list)
    turn_order: List[str] = Field(default_factory=list)
    player_teams: Dict[str, Roster] = Field(default_factory=dict)
    skips_remaining: Dict[str, int] = Field(default_factory=dict)
    departed: List[str] = Field(default_factory=list)
    messages: List[ChatEntry] = Field(default_factory=list)
    # writer bookkeeping, only used to drop stale echoes of our own writes
    rev: int = 0
    updated_by: Optional[str] = None


class SetupState(_StateBase):
    status: Literal["SETUP"] = "SETUP"


class DraftingState(_StateBase):
    status: Literal["DRAFTING"] = "DRAFTING"
    round: int = 1
    current_turn: int = 0
    current_draw: Optional[Character] = None


class GradingState(_StateBase):
    status: Literal["GRADING"] = "GRADING"
    round: int = MAX_ROUNDS + 1
    current_turn: int = 0


class FinishedState(_StateBase):
    status: Literal["FINISHED"] = "FINISHED"
    round: int = MAX_ROUNDS + 1
    current_turn: int = 0
    results: MatchResults


GameState = Annotated[
    Union[SetupState, DraftingState, GradingState, FinishedState],
    Field(discriminator="status"),
]

_state_adapter: TypeAdapter = TypeAdapter(GameState)


def _repair(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Self-repair a blob that lost per-player structures.
    Every player in turnOrder gets a 5-slot roster and a skip counter.
    """
    out = dict(data)
    out.setdefault("status", "SETUP")

    turn_order = [str(u) for u in (out.get("turnOrder") or []) if u]
    teams = dict(out.get("playerTeams") or {})
    skips = dict(out.get("skipsRemaining") or {})

    for uid in set(turn_order) | set(teams.keys()):
        roster = teams.get(uid)
        if not isinstance(roster, list):
            roster = []
        roster = list(roster[:ROSTER_SIZE])
        roster.extend([None] * (ROSTER_SIZE - len(roster)))
        teams[uid] = roster
        if uid in turn_order and not isinstance(skips.get(uid), int):
            skips[uid] = INITIAL_SKIPS

    out["turnOrder"] = turn_order
    out["playerTeams"] = teams
    out["skipsRemaining"] = {k: max(0, int(v)) for k, v in skips.items() if isinstance(v, int)}

    if out["status"] == "FINISHED" and not out.get("results"):
        out["status"] = "GRADING"
    if out["status"] != "FINISHED":
        out.pop("results", None)
    return out


def load_state(data: Any) -> Union[SetupState, DraftingState, GradingState, FinishedState]:
    """
    Parse a persisted/broadcast blob into the matching status variant.
    Raises ValidationError (or ValueError) when the blob is not an object.
    """
    if isinstance(data, (SetupState, DraftingState, GradingState, FinishedState)):
        return data
    if not isinstance(data, dict):
        raise ValueError("game state must be an object")
    return _state_adapter.validate_python(_repair(_to_camel_keys(data)))


def try_load_state(data: Any) -> Optional[Union[SetupState, DraftingState, GradingState, FinishedState]]:
    if data is None:
        return None
    try:
        return load_state(data)
    except (ValidationError, ValueError) as e:
        logger.warning("Dropping unreadable game state: %s", e)
        return None


def dump_state(state: _StateBase) -> Dict[str, Any]:
    return state.model_dump(by_alias=True, mode="json")


def _to_camel_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    # accept python-side names too (current_turn -> currentTurn), top level only
    to_camel = CamelModel.model_config["alias_generator"]
    return {to_camel(k) if "_" in k else k: v for k, v in data.items()}
