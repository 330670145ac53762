# app/transport/dispatcher.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError
from redis.exceptions import RedisError

from app.transport.protocols import (
    parse_action,
    dump_event,
    OutError,
    InCreateRoom,
    InJoinRoom,
    InStart,
    InInitState,
    InUpdateState,
    InEnd,
    InLeave,
    InChatMessage,
)
from app.domain.lifecycle.handlers import (
    handle_create_room,
    handle_join_room,
    handle_get_room,
    handle_leave,
)
from app.domain.match.handlers import (
    handle_start,
    handle_init_state,
    handle_update_state,
    handle_end,
    handle_chat_message,
)

logger = logging.getLogger(__name__)

DispatchResult = Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]
# (to_sender_events, to_room_events), each event is JSON dict


async def perform_room_action(*, app, room_id: str, raw: Dict[str, Any]) -> DispatchResult:
    """
    postRoomAction entry point.
    - Parses + validates raw JSON {action, data, userId}
    - Routes to the correct domain handler
    - Pushes to_room events onto the room channel
    - Returns (to_sender, to_room) events as JSON dicts

    NOTE: This file contains NO Redis key usage and NO game rules.
    """
    try:
        msg = parse_action(raw)
    except (ValidationError, ValueError) as e:
        return [_error("BAD_MESSAGE", str(e))], []

    try:
        to_sender, to_room = await _route(app=app, room_id=room_id, msg=msg)
    except RedisError:
        logger.exception("Store failure on %s in room %s", msg.action, room_id)
        return [_error("STORE_UNAVAILABLE", "Room store unavailable, try again")], []

    out_sender, out_room = _dump(to_sender), _dump(to_room)
    await _publish(app, room_id, out_room)
    return out_sender, out_room


async def _route(*, app, room_id: str, msg):
    kw = dict(app=app, room_id=room_id, user_id=msg.user_id, msg=msg)

    if isinstance(msg, InStart):
        return await handle_start(**kw)
    if isinstance(msg, InInitState):
        return await handle_init_state(**kw)
    if isinstance(msg, InUpdateState):
        return await handle_update_state(**kw)
    if isinstance(msg, InEnd):
        return await handle_end(**kw)
    if isinstance(msg, InLeave):
        return await handle_leave(**kw)
    if isinstance(msg, InChatMessage):
        return await handle_chat_message(**kw)

    return [OutError(code="UNKNOWN_ACTION", message=f"Unhandled action {msg.action}")], []


async def create_room(*, app, raw: Dict[str, Any]) -> DispatchResult:
    try:
        msg = InCreateRoom.model_validate(raw)
    except ValidationError as e:
        return [_error("BAD_MESSAGE", str(e))], []
    return await _guarded(app, None, handle_create_room(app=app, msg=msg))


async def join_room(*, app, raw: Dict[str, Any]) -> DispatchResult:
    try:
        msg = InJoinRoom.model_validate(raw)
    except ValidationError as e:
        return [_error("BAD_MESSAGE", str(e))], []
    return await _guarded(app, None, handle_join_room(app=app, msg=msg))


async def get_room_state(*, app, room_id: str) -> DispatchResult:
    return await _guarded(app, room_id, handle_get_room(app=app, room_id=room_id))


async def _guarded(app, room_id, coro) -> DispatchResult:
    try:
        to_sender, to_room = await coro
    except RedisError:
        logger.exception("Store failure in room %s", room_id)
        return [_error("STORE_UNAVAILABLE", "Room store unavailable, try again")], []

    out_sender, out_room = _dump(to_sender), _dump(to_room)
    if room_id is None:
        # join: the room id only becomes known from the view
        room_id = next((e.get("id") for e in out_sender if e.get("type") == "room"), None)
    if room_id:
        await _publish(app, room_id, out_room)
    return out_sender, out_room


async def _publish(app, room_id: str, events: List[Dict[str, Any]]) -> None:
    broadcaster = getattr(app.state, "broadcaster", None)
    if broadcaster is None:
        return
    for e in events:
        await broadcaster.trigger(room_id, e)


def _error(code: str, message: str) -> Dict[str, Any]:
    return dump_event(OutError(code=code, message=message))


def _dump(events: List[Any]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for e in events:
        if e is None:
            continue
        if isinstance(e, dict):
            out.append(e)
        else:
            out.append(dump_event(e))
    return out
