# app/domain/draft/scoring.py
from __future__ import annotations

import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from app.domain.draft.models import ROLES, ROSTER_SIZE, Character, MatchResults

DEFAULT_FAVORITES = 100
RATING_WEIGHT = 3


def character_power(char: Optional[Character], slot_index: int) -> Tuple[float, float, int]:
    """
    Returns (base, total, rating) for a character sitting in a role slot.
    Empty slot scores zero.
    """
    if char is None:
        return 0.0, 0.0, 0
    favorites = char.stats.favorites
    if not favorites or favorites <= 0:
        favorites = DEFAULT_FAVORITES
    rating = char.role_stats.rating(slot_index) or 1
    base = math.log(favorites)
    return base, base + rating * RATING_WEIGHT, rating


def _ordered_players(teams: Mapping[str, Sequence[Optional[Character]]], turn_order: Optional[Sequence[str]]) -> List[str]:
    order = [u for u in (turn_order or []) if u in teams]
    order.extend(u for u in teams if u not in order)
    return order


def calculate_winner(
    player_teams: Mapping[str, Sequence[Optional[Character]]],
    turn_order: Optional[Sequence[str]] = None,
) -> MatchResults:
    """
    Score final rosters role by role.

    Each role goes to every player whose power equals the role maximum (and is
    above zero). Most role points wins; ties fall to the higher power sum, then
    to whoever comes first in turn order.
    """
    players = _ordered_players(player_teams, turn_order)
    points: Dict[str, int] = {u: 0 for u in players}
    powers: Dict[str, float] = {u: 0.0 for u in players}
    logs: List[str] = []

    for slot in range(ROSTER_SIZE):
        role = ROLES[slot]
        logs.append(f"{role}:")
        role_power: Dict[str, float] = {}

        for uid in players:
            roster = player_teams.get(uid) or []
            char = roster[slot] if slot < len(roster) else None
            base, total, rating = character_power(char, slot)
            role_power[uid] = total
            powers[uid] += total
            if char is None:
                logs.append(f"   > {uid}: (empty slot) = 0.0")
            else:
                logs.append(
                    f"   > {uid}: {char.name} Pwr {base:.1f} + ({rating}* x {RATING_WEIGHT}) = {total:.1f}"
                )

        best = max(role_power.values(), default=0.0)
        if best <= 0:
            logs.append(f"   = {role}: no contest (all slots empty)")
            continue

        winners = [u for u in players if role_power[u] == best]
        for uid in winners:
            points[uid] += 1
        if len(winners) > 1:
            logs.append(f"   = {role}: tie at {best:.1f} between {', '.join(winners)}")
        else:
            logs.append(f"   = {role}: won by {winners[0]} ({best:.1f})")

    winner_id: Optional[str] = None
    for uid in players:
        if winner_id is None:
            winner_id = uid
            continue
        if (points[uid], powers[uid]) > (points[winner_id], powers[winner_id]):
            winner_id = uid

    logs.append("FINAL SCORE:")
    for uid in sorted(players, key=lambda u: (-points[u], -powers[u], players.index(u))):
        mark = " (WINNER)" if uid == winner_id else ""
        logs.append(f"   {uid}: {points[uid]} role pts, total pwr {powers[uid]:.1f}{mark}")

    return MatchResults(winner_id=winner_id, scores=points, powers=powers, logs=logs)
