from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError

from app.domain.common.fsm import can_transition_to
from app.domain.common.validation import active_players, is_host
from app.domain.draft.models import SetupState, dump_state, load_state
from app.transport.protocols import (
    InInitState,
    InStart,
    OutError,
    OutGameStarted,
    OutStateUpdated,
)
from app.util.timeutil import now_ms

logger = logging.getLogger(__name__)

Outgoing = List[object]
Result = Tuple[Outgoing, Outgoing]


async def handle_start(*, app, room_id: str, user_id: Optional[str], msg: InStart) -> Result:
    """
    Host moves the room into DRAFTING. The old blob is wiped so the host
    client can seed a fresh SETUP state (also how a rematch starts).
    """
    from app.domain.lifecycle.handlers import build_room_view

    repo = app.state.repo
    ts = now_ms()

    room = await repo.get_room(room_id)
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message="Room not found")], []
    if not is_host(room, user_id):
        return [OutError(code="NOT_HOST", message="Only the host can start the game")], []
    if not can_transition_to(room.status, "DRAFTING"):
        return [OutError(code="BAD_STATE", message=f"Cannot start game in state {room.status}")], []

    players = await repo.list_players(room_id)
    if not active_players(players):
        return [OutError(code="NO_PLAYERS", message="No players to draft")], []

    await repo.clear_game_state(room_id)
    await repo.clear_room_end(room_id)
    await repo.update_room_fields(room_id, status="DRAFTING", started_at=ts, last_activity=ts)
    logger.info("Room %s started by %s", room_id, user_id)

    view = await build_room_view(repo, room_id)
    return [view], [OutGameStarted(started_at=ts)]


async def handle_init_state(*, app, room_id: str, user_id: Optional[str], msg: InInitState) -> Result:
    """
    Create-if-absent write of the initial SETUP blob.
    The caller always gets back whichever state actually got persisted.
    """
    repo = app.state.repo

    room = await repo.get_room(room_id)
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message="Room not found")], []
    if not is_host(room, user_id):
        return [OutError(code="NOT_HOST", message="Only the host can create the game state")], []
    if room.status != "DRAFTING":
        return [OutError(code="NOT_STARTED", message="Game has not started")], []

    try:
        state = load_state(msg.data)
    except (ValidationError, ValueError):
        return [OutError(code="BAD_STATE_PAYLOAD", message="Malformed game state")], []
    if not isinstance(state, SetupState):
        return [OutError(code="BAD_STATE_PAYLOAD", message="Initial game state must be SETUP")], []

    created = await repo.set_game_state_if_absent(room_id, dump_state(state))
    persisted = await repo.get_game_state(room_id)
    if not created:
        logger.info("Room %s already has a game state, init by %s ignored", room_id, user_id)
        return [OutStateUpdated(state=persisted or {})], []

    await repo.update_room_fields(room_id, last_activity=now_ms())
    ev = OutStateUpdated(state=persisted or {})
    return [ev], [ev]
