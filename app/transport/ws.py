# app/transport/ws.py
from __future__ import annotations

import uuid
import ipaddress
from urllib.parse import urlparse

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.settings import settings_for
from app.transport.dispatcher import get_room_state
from app.transport.protocols import OutError, dump_event

router = APIRouter()


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = settings_for(websocket.app)
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is None or origin in allowed:
        return True
    if settings.WS_ALLOW_LAN_ORIGINS:
        o = urlparse(origin)
        if _is_private_ip(o.hostname or "") and o.port == 3000:
            return True
    await websocket.close(code=1008)
    return False


@router.websocket("/ws/{room_id}")
async def ws_room(websocket: WebSocket, room_id: str):
    """
    Room broadcast channel. Subscribe-only: every mutation goes through
    POST /rooms/{room_id}/state. The one thing a client may send is
    {"type": "snapshot"} to get the current room view back.
    """
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    conn_id = uuid.uuid4().hex[:10]
    wsman = websocket.app.state.wsman
    await wsman.add(room_id, conn_id, websocket)

    try:
        while True:
            raw = await websocket.receive_json()
            if isinstance(raw, dict) and raw.get("type") == "snapshot":
                to_sender, _ = await get_room_state(app=websocket.app, room_id=room_id)
                for e in to_sender:
                    await websocket.send_json(e)
                continue
            err = OutError(code="BAD_MESSAGE", message="Only snapshot requests are accepted here")
            await websocket.send_json(dump_event(err))
    except WebSocketDisconnect:
        pass
    finally:
        await wsman.remove(room_id, conn_id)
