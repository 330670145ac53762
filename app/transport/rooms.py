from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse

from app.settings import settings_for
from app.transport import dispatcher

router = APIRouter(tags=["rooms"])

_STATUS_BY_CODE = {
    "ROOM_NOT_FOUND": 404,
    "NOT_HOST": 403,
    "NOT_MEMBER": 403,
    "ROOM_STARTED": 409,
    "ROOM_FULL": 409,
    "ALREADY_FINISHED": 409,
    "STATE_FROZEN": 409,
    "RATE_LIMITED": 429,
    "STORE_UNAVAILABLE": 503,
}


def _client_ip(request: Request) -> str:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _respond(to_sender: List[Dict[str, Any]]) -> JSONResponse:
    """First event is the answer; an error event maps to its HTTP status."""
    first = to_sender[0] if to_sender else {"type": "ok"}
    if first.get("type") == "error":
        return JSONResponse(first, status_code=_STATUS_BY_CODE.get(first.get("code"), 400))
    return JSONResponse(first)


async def _rate_limited(request: Request, bucket: str, limit: int) -> bool:
    settings = settings_for(request.app)
    repo = request.app.state.repo
    return await repo.hit_rate_limit(bucket, _client_ip(request), limit, settings.RATE_LIMIT_WINDOW_SEC)


def _too_many() -> JSONResponse:
    return JSONResponse(
        {"type": "error", "code": "RATE_LIMITED", "message": "Too many requests, slow down"},
        status_code=429,
    )


@router.post("/rooms")
async def create_room(request: Request, payload: Dict[str, Any] = Body(...)):
    settings = settings_for(request.app)
    if await _rate_limited(request, "create", settings.RATE_LIMIT_CREATE):
        return _too_many()
    to_sender, _ = await dispatcher.create_room(app=request.app, raw=payload)
    return _respond(to_sender)


@router.post("/rooms/join")
async def join_room(request: Request, payload: Dict[str, Any] = Body(...)):
    settings = settings_for(request.app)
    if await _rate_limited(request, "join", settings.RATE_LIMIT_JOIN):
        return _too_many()
    to_sender, _ = await dispatcher.join_room(app=request.app, raw=payload)
    return _respond(to_sender)


@router.get("/rooms/{room_id}/state")
async def get_room_state(room_id: str, request: Request):
    to_sender, _ = await dispatcher.get_room_state(app=request.app, room_id=room_id)
    return _respond(to_sender)


@router.post("/rooms/{room_id}/state")
async def post_room_action(room_id: str, request: Request, payload: Dict[str, Any] = Body(...)):
    to_sender, _ = await dispatcher.perform_room_action(app=request.app, room_id=room_id, raw=payload)
    return _respond(to_sender)


@router.get("/characters")
async def list_characters(request: Request, limit: int = Query(500, ge=1, le=5000)):
    repo = request.app.state.repo
    return {"characters": await repo.list_characters(limit=limit)}


@router.get("/leaderboard")
async def leaderboard(request: Request, limit: int = Query(10, ge=1, le=100)):
    repo = request.app.state.repo
    users = await repo.get_leaderboard(limit=limit)
    return {"users": [u.model_dump(by_alias=True) for u in users]}
