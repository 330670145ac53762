# app/transport/broadcast.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from app.transport.protocols import OutBase, dump_event
from app.transport.ws_manager import WSManager

logger = logging.getLogger(__name__)

# never ship the client-side catalog over the channel
_POOL_KEYS = ("characterPool", "catalog")


def _size(payload: Dict[str, Any]) -> int:
    return len(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


def shrink_payload(payload: Dict[str, Any], max_bytes: int) -> Dict[str, Any]:
    """
    Strip pool data, then chat history, to get under the broadcast ceiling.
    A state event that is still too big becomes a bare `truncated` marker and
    receivers re-read the persisted state instead.
    """
    out = {k: v for k, v in payload.items() if k not in _POOL_KEYS}
    state = out.get("state")
    if isinstance(state, dict):
        out["state"] = {k: v for k, v in state.items() if k not in _POOL_KEYS}

    if _size(out) <= max_bytes:
        return out

    if isinstance(out.get("state"), dict):
        out["state"] = {k: v for k, v in out["state"].items() if k != "messages"}
        if _size(out) <= max_bytes:
            return out
        return {"type": out.get("type"), "state": {}, "truncated": True}

    return out


class RoomBroadcaster:
    """
    Best-effort per-room event channel. Failures are logged and swallowed:
    persisted state stays the source of truth and clients recover by re-reading it.
    """

    def __init__(self, wsman: WSManager, max_bytes: int = 10240) -> None:
        self.wsman = wsman
        self.max_bytes = max_bytes

    async def trigger(self, room_id: str, event: OutBase | Dict[str, Any]) -> None:
        payload = event if isinstance(event, dict) else dump_event(event)
        try:
            payload = shrink_payload(payload, self.max_bytes)
            if _size(payload) > self.max_bytes:
                logger.warning("Event %s for room %s exceeds %d bytes", payload.get("type"), room_id, self.max_bytes)
            await self.wsman.broadcast(room_id, payload)
        except Exception:
            logger.exception("Broadcast of %s to room %s failed", payload.get("type"), room_id)
