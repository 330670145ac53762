# app/domain/draft/merge.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from app.domain.draft.models import dump_state, load_state
from app.domain.draft.turns import carry_departures


def merge_state(local, incoming: Mapping[str, Any], *, self_id: Optional[str] = None):
    """
    Shallow last-write-wins merge of a broadcast snapshot (full or partial)
    over the local copy. Top-level fields from `incoming` replace local ones.

    The only thing dropped is an older echo of our own write: if the snapshot
    was written by `self_id` at a lower rev than we already hold, the local
    copy is newer by construction. Departures are server facts and are kept
    even from a dropped echo.

    The local rev never goes down, so our next write still outranks our
    older echoes.
    """
    if local is None:
        return load_state(dict(incoming))

    try:
        incoming_rev = int(incoming.get("rev") or 0)
    except (TypeError, ValueError):
        incoming_rev = 0

    if self_id is not None and incoming.get("updatedBy") == self_id and incoming_rev < local.rev:
        return carry_departures(local, incoming.get("departed") or [])

    merged: Dict[str, Any] = dump_state(local)
    merged.update(incoming)
    merged["rev"] = max(local.rev, incoming_rev)
    return load_state(merged)
