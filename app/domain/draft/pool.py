# app/domain/draft/pool.py
from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, Set

from app.domain.draft.models import Character


def list_universes(catalog: Iterable[Character]) -> List[str]:
    return sorted({c.anime_universe for c in catalog if c.anime_universe})


def filter_catalog(catalog: Iterable[Character], universes: Iterable[str]) -> List[Character]:
    """
    Catalog entries whose universe is enabled for this match.
    """
    allowed = set(universes)
    return [c for c in catalog if c.anime_universe in allowed]


def excluded_ids(state) -> Set[int]:
    """
    Ids that can no longer be drawn: anything on a roster plus the card in hand.
    A skipped card is in neither, so it is eligible again.
    """
    out: Set[int] = set()
    for roster in (state.player_teams or {}).values():
        for slot in roster:
            if slot is not None:
                out.add(slot.id)
    current = getattr(state, "current_draw", None)
    if current is not None:
        out.add(current.id)
    return out


def eligible_pool(catalog: Sequence[Character], state) -> List[Character]:
    taken = excluded_ids(state)
    return [c for c in filter_catalog(catalog, state.selected_universes) if c.id not in taken]


def sample_character(
    catalog: Sequence[Character],
    state,
    rng: Optional[random.Random] = None,
) -> Optional[Character]:
    """
    Uniform pick among eligible characters, or None when the pool is exhausted.
    """
    pool = eligible_pool(catalog, state)
    if not pool:
        return None
    return (rng or random).choice(pool)
