from __future__ import annotations

from .merge import merge_state
from .models import (
    GameState,
    Character,
    SetupState,
    DraftingState,
    GradingState,
    FinishedState,
    MatchResults,
    load_state,
    dump_state,
)
from .scoring import calculate_winner

__all__ = [
    "merge_state",
    "GameState",
    "Character",
    "SetupState",
    "DraftingState",
    "GradingState",
    "FinishedState",
    "MatchResults",
    "load_state",
    "dump_state",
    "calculate_winner",
]
