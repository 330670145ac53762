from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException, Query, Request
from pydantic import ValidationError

from app.domain.draft.models import Character

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/rooms")
async def list_rooms(request: Request):
    """
    List all live rooms (debug/admin).
    """
    repo = request.app.state.repo
    wsman = request.app.state.wsman

    rooms = []
    for room_id in await repo.list_room_ids():
        room = await repo.get_room(room_id)
        if room is None:
            continue
        players = await repo.list_players(room_id)
        spectators = [p for p in players if p.is_spectator]
        rooms.append(
            {
                "id": room.id,
                "code": room.code,
                "hostId": room.host_id,
                "status": room.status,
                "maxPlayers": room.max_players,
                "players": len(players) - len(spectators),
                "spectators": len(spectators),
                "subscribers": await wsman.room_size(room_id),
                "lastActivity": room.last_activity,
                "createdAt": room.created_at,
            }
        )

    return {"rooms": rooms}


@router.post("/rooms/{room_id}/close")
async def close_room(room_id: str, request: Request):
    """
    Force close a room (debug/admin). Deletes its Redis keys and closes websockets.
    """
    repo = request.app.state.repo
    wsman = request.app.state.wsman

    room = await repo.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    await repo.delete_room(room_id, room.code)
    await wsman.close_room(room_id, code=4000)
    logger.info("Room %s closed by admin", room_id)

    return {"ok": True, "roomId": room_id}


@router.get("/matches")
async def list_matches(request: Request, limit: int = Query(50, ge=1, le=1000)):
    """
    Most recent match records, newest first.
    """
    repo = request.app.state.repo
    records = await repo.list_matches(-limit, -1)
    return {"matches": [m.model_dump(by_alias=True) for m in reversed(records)]}


@router.put("/characters")
async def upsert_characters(request: Request, payload: List[Dict[str, Any]] = Body(...)):
    """
    Bulk catalog upsert. Entries are validated (and get derived role ratings
    when they carry none) before they are stored.
    """
    repo = request.app.state.repo
    try:
        chars = [Character.model_validate(c) for c in payload]
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    count = await repo.upsert_characters(c.model_dump(by_alias=True, mode="json") for c in chars)
    return {"ok": True, "count": count}
