from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError

from app.domain.common.fsm import can_transition_game
from app.domain.common.validation import is_member
from app.domain.draft.models import FinishedState, dump_state, load_state, try_load_state
from app.domain.draft.turns import carry_departures
from app.transport.protocols import InUpdateState, OutError, OutStateUpdated
from app.util.timeutil import now_ms

logger = logging.getLogger(__name__)

Outgoing = List[object]
Result = Tuple[Outgoing, Outgoing]


async def handle_update_state(*, app, room_id: str, user_id: Optional[str], msg: InUpdateState) -> Result:
    """
    Persist a client-computed blob (last write wins) and fan it out.

    Only shape, membership and status direction are checked. Game rules are
    the clients' job.
    Chat history and departures are owned here, so the persisted ones survive
    the overwrite even when the writer had not seen them yet.
    """
    repo = app.state.repo

    room = await repo.get_room(room_id)
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message="Room not found")], []
    player = await repo.get_player(room_id, user_id)
    if not is_member(player):
        return [OutError(code="NOT_MEMBER", message="You are not in this room")], []
    if room.status == "FINISHED":
        return [OutError(code="STATE_FROZEN", message="Game is finished")], []
    if room.status != "DRAFTING":
        return [OutError(code="NOT_STARTED", message="Game has not started")], []

    persisted = try_load_state(await repo.get_game_state(room_id))
    if isinstance(persisted, FinishedState):
        return [OutError(code="STATE_FROZEN", message="Game is finished")], []

    try:
        state = load_state(msg.data)
    except (ValidationError, ValueError):
        return [OutError(code="BAD_STATE_PAYLOAD", message="Malformed game state")], []

    if persisted is not None and persisted.status != state.status:
        if not can_transition_game(persisted.status, state.status):
            return [OutError(code="BAD_TRANSITION", message=f"Cannot go from {persisted.status} to {state.status}")], []

    if persisted is not None:
        state = carry_departures(state, persisted.departed)
        state = state.model_copy(update={"messages": list(persisted.messages)})
    else:
        state = state.model_copy(update={"messages": []})

    blob = dump_state(state)
    await repo.set_game_state(room_id, blob)
    await repo.update_room_fields(room_id, last_activity=now_ms())
    logger.debug("Room %s state rev %s written by %s (%s)", room_id, state.rev, user_id, state.status)

    ev = OutStateUpdated(state=blob)
    return [ev], [ev]
