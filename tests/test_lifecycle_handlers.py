import pytest

from app.domain.draft import turns
from app.domain.draft.models import dump_state, load_state
from app.domain.lifecycle.handlers import (
    ROOM_CODE_ALPHABET,
    handle_create_room,
    handle_get_room,
    handle_join_room,
    handle_leave,
)
from app.transport.protocols import InCreateRoom, InJoinRoom, InLeave, OutError, OutRoomView
from conftest import FakeApp, make_catalog


async def _create(app, host="h"):
    to_sender, _ = await handle_create_room(app=app, msg=InCreateRoom(host_id=host, name="Host"))
    return to_sender[0]


async def _join(app, code, user, spectator=False):
    return await handle_join_room(app=app, msg=InJoinRoom(code=code, user_id=user, is_spectator=spectator))


@pytest.mark.asyncio
async def test_create_room_seats_host(app, repo):
    view = await _create(app)

    assert isinstance(view, OutRoomView)
    assert view.status == "WAITING"
    assert view.max_players == 4
    assert len(view.code) == 6
    assert all(ch in ROOM_CODE_ALPHABET for ch in view.code)
    assert [p["userId"] for p in view.players] == ["h"]
    assert repo.codes[view.code] == view.id
    assert repo.users["h"].name == "Host"


@pytest.mark.asyncio
async def test_codes_are_unique(app):
    codes = {(await _create(app, host=f"h{i}")).code for i in range(20)}
    assert len(codes) == 20


@pytest.mark.asyncio
async def test_join_by_code_case_insensitive(app):
    view = await _create(app)
    to_sender, to_room = await _join(app, view.code.lower(), "p1")

    assert isinstance(to_sender[0], OutRoomView)
    assert [p["userId"] for p in to_sender[0].players] == ["h", "p1"]
    assert to_room[0].type == "player-joined"
    assert to_room[0].user_id == "p1"


@pytest.mark.asyncio
async def test_join_unknown_code(app):
    to_sender, to_room = await _join(app, "ZZZZZZ", "p1")
    assert isinstance(to_sender[0], OutError)
    assert to_sender[0].code == "ROOM_NOT_FOUND"
    assert to_room == []


@pytest.mark.asyncio
async def test_join_is_idempotent(app, repo):
    view = await _create(app)
    await _join(app, view.code, "p1")
    to_sender, to_room = await _join(app, view.code, "p1")

    assert isinstance(to_sender[0], OutRoomView)
    assert to_room == []
    assert len(await repo.list_players(view.id)) == 2


@pytest.mark.asyncio
async def test_join_full_room_rejected_but_spectators_allowed(app):
    view = await _create(app)
    for uid in ("p1", "p2", "p3"):
        await _join(app, view.code, uid)

    to_sender, _ = await _join(app, view.code, "p4")
    assert to_sender[0].code == "ROOM_FULL"

    to_sender, _ = await _join(app, view.code, "watcher", spectator=True)
    assert isinstance(to_sender[0], OutRoomView)


@pytest.mark.asyncio
async def test_join_after_start_rejected(app, repo):
    view = await _create(app)
    await repo.update_room_fields(view.id, status="DRAFTING")

    to_sender, _ = await _join(app, view.code, "late")

    assert to_sender[0].code == "ROOM_STARTED"


@pytest.mark.asyncio
async def test_get_room_missing(app):
    to_sender, _ = await handle_get_room(app=app, room_id="nope")
    assert to_sender[0].code == "ROOM_NOT_FOUND"


@pytest.mark.asyncio
async def test_last_player_out_deletes_room(app, repo):
    view = await _create(app)

    to_sender, to_room = await handle_leave(app=app, room_id=view.id, user_id="h", msg=InLeave(user_id="h"))

    assert to_sender[0].room_deleted is True
    assert view.id not in repo.rooms
    assert view.code not in repo.codes


@pytest.mark.asyncio
async def test_host_leaving_hands_over_to_earliest_player(app, repo):
    view = await _create(app)
    await _join(app, view.code, "watcher", spectator=True)
    await _join(app, view.code, "p1")
    await _join(app, view.code, "p2")

    _, to_room = await handle_leave(app=app, room_id=view.id, user_id="h", msg=InLeave(user_id="h"))

    room = await repo.get_room(view.id)
    assert room.host_id == "p1"
    assert to_room[0].type == "player-left"
    assert to_room[0].host_id == "p1"


@pytest.mark.asyncio
async def test_leave_requires_membership(app):
    view = await _create(app)
    to_sender, _ = await handle_leave(app=app, room_id=view.id, user_id="ghost", msg=InLeave(user_id="ghost"))
    assert to_sender[0].code == "NOT_MEMBER"


@pytest.mark.asyncio
async def test_leave_mid_draft_marks_departed_and_moves_turn(app, repo):
    view = await _create(app)
    await _join(app, view.code, "p1")
    await repo.update_room_fields(view.id, status="DRAFTING")

    st = turns.init_setup_state(["h", "p1"])
    st, _ = turns.set_universes(st, ["Naruto", "One Piece"], is_host=True)
    st, _ = turns.start_draft(st, make_catalog(), is_host=True)
    await repo.set_game_state(view.id, dump_state(st))

    _, to_room = await handle_leave(app=app, room_id=view.id, user_id="h", msg=InLeave(user_id="h"))

    persisted = load_state(await repo.get_game_state(view.id))
    assert persisted.departed == ["h"]
    assert turns.active_player_id(persisted) == "p1"
    assert [e.type for e in to_room] == ["player-left", "state-updated"]
