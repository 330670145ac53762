# app/domain/lifecycle/handlers.py
from __future__ import annotations

import logging
import random
import uuid
from typing import List, Tuple, Optional

from app.settings import settings_for
from app.util.timeutil import now_ms
from app.store.models import RoomStore, RoomPlayerStore
from app.domain.common.validation import active_players, is_active_player, is_member, normalize_code
from app.domain.draft.models import dump_state, try_load_state
from app.domain.draft.turns import mark_departed
from app.transport.protocols import (
    OutgoingEvent,
    OutError,
    OutRoomView,
    OutLeft,
    OutPlayerJoined,
    OutPlayerLeft,
    OutStateUpdated,
    InCreateRoom,
    InJoinRoom,
    InLeave,
)

logger = logging.getLogger(__name__)

# Returns: (to_sender, to_room)
Result = Tuple[List[OutgoingEvent], List[OutgoingEvent]]

# no 0/O, 1/I
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_CODE_ATTEMPTS = 10


def _gen_room_code(n: int = 6) -> str:
    return "".join(random.choice(ROOM_CODE_ALPHABET) for _ in range(n))


async def build_room_view(repo, room_id: str) -> Optional[OutRoomView]:
    """
    Room + players + gameState, straight from the store.
    Keep it store-driven, not rule-driven.
    """
    room = await repo.get_room(room_id)
    if room is None:
        return None

    players = await repo.list_players(room_id)
    game_state = await repo.get_game_state(room_id)

    return OutRoomView(
        id=room.id,
        code=room.code,
        host_id=room.host_id,
        status=room.status,
        max_players=room.max_players,
        created_at=room.created_at,
        started_at=room.started_at,
        players=[p.model_dump(by_alias=True) for p in players],
        game_state=game_state,
    )


# -------------------------
# Handlers
# -------------------------

async def handle_create_room(*, app, msg: InCreateRoom) -> Result:
    """
    Create a room with a fresh code and seat the host as its first player.
    Code uniqueness is claimed with a create-only write on the code index.
    """
    repo = app.state.repo
    settings = settings_for(app)
    ts = now_ms()

    room_id = uuid.uuid4().hex
    code = ""
    for _ in range(_CODE_ATTEMPTS):
        candidate = _gen_room_code(settings.ROOM_CODE_LENGTH)
        if await repo.reserve_room_code(candidate, room_id):
            code = candidate
            break
    if not code:
        return [OutError(code="CODE_EXHAUSTED", message="Could not allocate a room code, try again")], []

    room = RoomStore(
        id=room_id,
        code=code,
        host_id=msg.host_id,
        status="WAITING",
        max_players=settings.MAX_PLAYERS,
        created_at=ts,
        started_at=0,
        last_activity=ts,
    )
    await repo.create_room(room)
    await repo.ensure_user(msg.host_id, msg.name)

    seq = await repo.next_join_seq(room_id)
    await repo.add_player(room_id, RoomPlayerStore(user_id=msg.host_id, is_spectator=False, joined_at=ts, seq=seq))

    logger.info("Room %s created by %s (code %s)", room_id, msg.host_id, code)
    view = await build_room_view(repo, room_id)
    return [view], []


async def handle_join_room(*, app, msg: InJoinRoom) -> Result:
    """
    Join by code:
    - unknown code / not WAITING / no free player seat -> rejected
    - already a member -> returns the room unchanged (idempotent)
    """
    repo = app.state.repo
    ts = now_ms()
    code = normalize_code(msg.code)

    room_id = await repo.find_room_id_by_code(code)
    room = await repo.get_room(room_id) if room_id else None
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message=f"Room {code} not found")], []

    existing = await repo.get_player(room.id, msg.user_id)
    if existing is not None:
        return [await build_room_view(repo, room.id)], []

    if room.status != "WAITING":
        return [OutError(code="ROOM_STARTED", message="Game already started")], []

    players = await repo.list_players(room.id)
    if not msg.is_spectator and len(active_players(players)) >= room.max_players:
        return [OutError(code="ROOM_FULL", message="Room is full")], []

    await repo.ensure_user(msg.user_id, msg.name)
    seq = await repo.next_join_seq(room.id)
    await repo.add_player(
        room.id,
        RoomPlayerStore(user_id=msg.user_id, is_spectator=msg.is_spectator, joined_at=ts, seq=seq),
    )
    await repo.update_room_fields(room.id, last_activity=ts)

    view = await build_room_view(repo, room.id)
    joined = OutPlayerJoined(user_id=msg.user_id, room=view.model_dump(by_alias=True, exclude={"game_state"}))
    return [view], [joined]


async def handle_get_room(*, app, room_id: str) -> Result:
    repo = app.state.repo
    view = await build_room_view(repo, room_id)
    if view is None:
        return [OutError(code="ROOM_NOT_FOUND", message=f"Room {room_id} not found")], []
    return [view], []


async def handle_leave(*, app, room_id: str, user_id: Optional[str], msg: InLeave) -> Result:
    """
    Leave: delete the caller's RoomPlayer row.
    - last one out deletes the room
    - a departing host hands the room to the earliest remaining member
    - mid-draft, the seat is marked departed so the turn never strands on it
    """
    repo = app.state.repo
    ts = now_ms()

    room = await repo.get_room(room_id)
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message=f"Room {room_id} not found")], []

    player = await repo.get_player(room_id, user_id)
    if not is_member(player):
        return [OutError(code="NOT_MEMBER", message="You are not in this room")], []

    await repo.remove_player(room_id, user_id)
    remaining = await repo.list_players(room_id)

    if not remaining:
        await repo.delete_room(room_id, room.code)
        logger.info("Room %s deleted, last player %s left", room_id, user_id)
        return [OutLeft(room_deleted=True)], [OutPlayerLeft(user_id=user_id)]

    to_room: List[OutgoingEvent] = []
    host_id = room.host_id
    if host_id == user_id:
        successor = active_players(remaining) or remaining
        host_id = successor[0].user_id
        await repo.update_room_fields(room_id, host_id=host_id, last_activity=ts)
        logger.info("Room %s host passed from %s to %s", room_id, user_id, host_id)
    else:
        await repo.update_room_fields(room_id, last_activity=ts)

    to_room.append(OutPlayerLeft(user_id=user_id, host_id=host_id))

    state = try_load_state(await repo.get_game_state(room_id))
    if state is not None and is_active_player(player):
        new_state = mark_departed(state, user_id)
        if new_state is not state:
            # server write: no client may take it for an echo of its own
            blob = dump_state(new_state.model_copy(update={"updated_by": None}))
            await repo.set_game_state(room_id, blob)
            to_room.append(OutStateUpdated(state=blob))

    return [OutLeft()], to_room
