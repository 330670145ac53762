# app/domain/draft/turns.py
from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from app.domain.draft.models import (
    INITIAL_SKIPS,
    MAX_ROUNDS,
    MIN_POOL_SIZE,
    ROSTER_SIZE,
    Character,
    DraftingState,
    FinishedState,
    GradingState,
    SetupState,
)
from app.domain.draft.pool import filter_catalog, sample_character
from app.domain.draft.scoring import calculate_winner

AnyState = Union[SetupState, DraftingState, GradingState, FinishedState]

# (state, reject_code). On rejection the input state comes back untouched.
Outcome = Tuple[AnyState, Optional[str]]


def _empty_roster() -> list:
    return [None] * ROSTER_SIZE


def init_setup_state(active_player_ids: Sequence[str], universes: Iterable[str] = ()) -> SetupState:
    """
    Initial blob synthesized by the host. Turn order is fixed here, from the
    join-ordered non-spectator list, and never re-derived afterwards.
    """
    order: List[str] = []
    for uid in active_player_ids:
        if uid and uid not in order:
            order.append(uid)
    return SetupState(
        selected_universes=sorted(set(universes)),
        turn_order=order,
        player_teams={u: _empty_roster() for u in order},
        skips_remaining={u: INITIAL_SKIPS for u in order},
    )


def active_player_id(state: AnyState) -> Optional[str]:
    if not isinstance(state, DraftingState):
        return None
    if not state.turn_order:
        return None
    idx = state.current_turn
    if idx < 0 or idx >= len(state.turn_order):
        return None
    return state.turn_order[idx]


def is_players_turn(state: AnyState, user_id: Optional[str]) -> bool:
    return user_id is not None and active_player_id(state) == user_id


def filled_slots(state: AnyState, players: Optional[Iterable[str]] = None) -> int:
    ids = list(players) if players is not None else list(state.player_teams.keys())
    return sum(1 for u in ids for slot in state.player_teams.get(u, []) if slot is not None)


def _remaining_players(state: AnyState) -> List[str]:
    return [u for u in state.turn_order if u not in state.departed]


def _roster_full(state: AnyState, user_id: str) -> bool:
    roster = state.player_teams.get(user_id) or []
    return len(roster) >= ROSTER_SIZE and all(slot is not None for slot in roster[:ROSTER_SIZE])


# ----------------------------
# SETUP (host only)
# ----------------------------

def set_universes(state: AnyState, universes: Iterable[str], *, is_host: bool) -> Outcome:
    if not isinstance(state, SetupState):
        return state, "NOT_SETUP"
    if not is_host:
        return state, "NOT_HOST"
    new_state = state.model_copy(deep=True)
    new_state.selected_universes = sorted(set(universes))
    return new_state, None


def start_draft(state: AnyState, catalog: Sequence[Character], *, is_host: bool) -> Outcome:
    """
    SETUP -> DRAFTING. Refused while the universe-filtered pool is under
    MIN_POOL_SIZE entries. Players who left during setup lose their seat here.
    """
    if not isinstance(state, SetupState):
        return state, "NOT_SETUP"
    if not is_host:
        return state, "NOT_HOST"
    order = [u for u in state.turn_order if u not in state.departed]
    if not order:
        return state, "NO_PLAYERS"
    if len(filter_catalog(catalog, state.selected_universes)) < MIN_POOL_SIZE:
        return state, "POOL_TOO_SMALL"

    return DraftingState(
        selected_universes=list(state.selected_universes),
        turn_order=order,
        player_teams={u: _empty_roster() for u in order},
        skips_remaining={u: INITIAL_SKIPS for u in order},
        messages=list(state.messages),
        rev=state.rev,
        updated_by=state.updated_by,
        round=1,
        current_turn=0,
        current_draw=None,
    ), None


# ----------------------------
# DRAFTING
# ----------------------------

def _check_turn(state: AnyState, user_id: str) -> Optional[str]:
    if not isinstance(state, DraftingState):
        return "NOT_DRAFTING"
    if not is_players_turn(state, user_id):
        return "NOT_YOUR_TURN"
    return None


def draw(
    state: AnyState,
    user_id: str,
    catalog: Sequence[Character],
    rng: Optional[random.Random] = None,
) -> Outcome:
    """
    Put a random eligible character in the active player's hand.
    Does not advance the turn.
    """
    err = _check_turn(state, user_id)
    if err:
        return state, err
    if state.current_draw is not None:
        return state, "ALREADY_DRAWN"

    pick = sample_character(catalog, state, rng)
    if pick is None:
        return state, "POOL_EXHAUSTED"

    new_state = state.model_copy(deep=True)
    new_state.current_draw = pick
    return new_state, None


def place(state: AnyState, user_id: str, slot_index: int) -> Outcome:
    """
    Put the drawn character into one of the caller's empty role slots, then
    pass the turn. Slot need not match the round number.
    """
    err = _check_turn(state, user_id)
    if err:
        return state, err
    if state.current_draw is None:
        return state, "NO_DRAW"
    if not isinstance(slot_index, int) or slot_index < 0 or slot_index >= ROSTER_SIZE:
        return state, "BAD_SLOT"

    roster = state.player_teams.get(user_id) or _empty_roster()
    if roster[slot_index] is not None:
        return state, "SLOT_TAKEN"

    new_state = state.model_copy(deep=True)
    new_roster = list(new_state.player_teams.get(user_id) or _empty_roster())
    new_roster[slot_index] = new_state.current_draw
    new_state.player_teams[user_id] = new_roster
    new_state.current_draw = None
    return _advance(new_state), None


def skip(state: AnyState, user_id: str) -> Outcome:
    """
    Discard the drawn character and pass the turn. The character is not
    tracked anywhere, so it can come up again on a later draw.
    """
    err = _check_turn(state, user_id)
    if err:
        return state, err
    if state.current_draw is None:
        return state, "NO_DRAW"
    if state.skips_remaining.get(user_id, 0) <= 0:
        return state, "NO_SKIPS"

    new_state = state.model_copy(deep=True)
    new_state.skips_remaining[user_id] = new_state.skips_remaining.get(user_id, 0) - 1
    new_state.current_draw = None
    return _advance(new_state), None


def mark_departed(state: AnyState, user_id: str) -> AnyState:
    """
    A player left mid-draft. Their seat stays in turn order but is passed over
    from now on; if they held the turn, their draw is dropped and play moves on.
    """
    if not isinstance(state, (SetupState, DraftingState)):
        return state
    if user_id not in state.turn_order or user_id in state.departed:
        return state

    new_state = state.model_copy(deep=True)
    new_state.departed.append(user_id)
    if not isinstance(new_state, DraftingState):
        return new_state

    if active_player_id(new_state) == user_id:
        new_state.current_draw = None
        return _advance(new_state)
    if _draft_complete(new_state):
        return _to_grading(new_state)
    return new_state


def carry_departures(state: AnyState, departed: Iterable[str]) -> AnyState:
    """
    Fold departures recorded elsewhere into `state`. A blob computed before a
    leave was seen must not seat the leaver again, nor leave the turn on them.
    """
    departed = list(departed)
    for uid in departed:
        state = mark_departed(state, uid)

    if isinstance(state, (GradingState, FinishedState)):
        missing = [u for u in departed if u not in state.departed]
        if missing:
            state = state.model_copy(update={"departed": list(state.departed) + missing})
    elif isinstance(state, DraftingState) and active_player_id(state) in state.departed:
        state = state.model_copy(deep=True)
        state.current_draw = None
        state = _advance(state)
    return state


def _draft_complete(state: DraftingState) -> bool:
    remaining = _remaining_players(state)
    return all(_roster_full(state, u) for u in remaining)


def _advance(state: DraftingState) -> AnyState:
    """
    Pass the turn and redo round accounting.

    round = filled // players + 1, counted over players still seated, so it
    ticks exactly when a full pass completes. It never goes backwards.

    The next seat is not a strict (currentTurn + 1) mod n: departed seats and
    seats whose roster is already full are passed over. With skips, rosters
    fill unevenly, so a full roster can come up before the draft is over.
    """
    remaining = _remaining_players(state)
    if remaining:
        computed = filled_slots(state, remaining) // len(remaining) + 1
        state.round = max(state.round, min(computed, MAX_ROUNDS + 1))

    if _draft_complete(state):
        state.round = MAX_ROUNDS + 1
        return _to_grading(state)

    n = len(state.turn_order)
    nxt = state.current_turn
    for _ in range(n):
        nxt = (nxt + 1) % n
        uid = state.turn_order[nxt]
        if uid in state.departed or _roster_full(state, uid):
            continue
        break
    state.current_turn = nxt
    return state


def _to_grading(state: DraftingState) -> GradingState:
    return GradingState(
        selected_universes=list(state.selected_universes),
        turn_order=list(state.turn_order),
        player_teams=state.player_teams,
        skips_remaining=dict(state.skips_remaining),
        departed=list(state.departed),
        messages=list(state.messages),
        rev=state.rev,
        updated_by=state.updated_by,
        round=MAX_ROUNDS + 1,
        current_turn=state.current_turn,
    )


# ----------------------------
# GRADING -> FINISHED
# ----------------------------

def grade(state: AnyState) -> Outcome:
    if not isinstance(state, GradingState):
        return state, "NOT_GRADING"
    results = calculate_winner(state.player_teams, state.turn_order)
    return FinishedState(
        selected_universes=list(state.selected_universes),
        turn_order=list(state.turn_order),
        player_teams=state.player_teams,
        skips_remaining=dict(state.skips_remaining),
        departed=list(state.departed),
        messages=list(state.messages),
        rev=state.rev,
        updated_by=state.updated_by,
        round=state.round,
        current_turn=state.current_turn,
        results=results,
    ), None
