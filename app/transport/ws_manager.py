# app/transport/ws_manager.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Anything that can receive a JSON event: a WebSocket or an in-process session."""

    async def send_json(self, data: Any) -> None: ...


@dataclass
class Conn:
    conn_id: str
    ws: Subscriber


class WSManager:
    """
    In-memory subscription registry, one topic per room.
    - room_id -> conn_id -> subscriber
    Transport-only: no Redis, no domain rules.
    """
    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, Conn]] = {}
        self._lock = asyncio.Lock()

    async def add(self, room_id: str, conn_id: str, ws: Subscriber) -> None:
        async with self._lock:
            self._rooms.setdefault(room_id, {})[conn_id] = Conn(conn_id=conn_id, ws=ws)

    async def remove(self, room_id: str, conn_id: str) -> None:
        async with self._lock:
            room = self._rooms.get(room_id)
            if not room:
                return
            room.pop(conn_id, None)
            if not room:
                self._rooms.pop(room_id, None)

    async def broadcast(self, room_id: str, event: dict, exclude: Optional[str] = None) -> int:
        """
        Fan out to every subscriber of the room. Returns how many sends succeeded.
        """
        # copy conns under lock, send outside lock
        async with self._lock:
            conns = list(self._rooms.get(room_id, {}).values())

        sent = 0
        for c in conns:
            if exclude and c.conn_id == exclude:
                continue
            try:
                await c.ws.send_json(event)
                sent += 1
            except Exception:
                # dead socket; ws.py cleans up on disconnect
                logger.debug("Dropping event for %s in room %s", c.conn_id, room_id, exc_info=True)
        return sent

    async def close_room(self, room_id: str, code: int = 4000) -> None:
        async with self._lock:
            conns = list(self._rooms.pop(room_id, {}).values())
        for c in conns:
            close = getattr(c.ws, "close", None)
            if close is None:
                continue
            try:
                await close(code=code)
            except Exception:
                logger.debug("Close failed for %s in room %s", c.conn_id, room_id, exc_info=True)

    async def room_size(self, room_id: str) -> int:
        async with self._lock:
            return len(self._rooms.get(room_id, {}))
