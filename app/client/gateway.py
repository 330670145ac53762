from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

import httpx
from websockets.asyncio import client as ws_client
from websockets.exceptions import ConnectionClosed

from app.domain.common.errors import ActionRejected, DraftError, PersistenceFailed
from app.transport import dispatcher
from app.transport.ws_manager import Subscriber

logger = logging.getLogger(__name__)


class RoomGateway(Protocol):
    """
    What a draft session needs from the room server: the room API plus a
    subscription to the room channel.
    """

    async def get_room_state(self, room_id: str) -> Dict[str, Any]: ...

    async def post_room_action(
        self, room_id: str, action: str, user_id: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]: ...

    async def list_characters(self, limit: int = 500) -> List[Dict[str, Any]]: ...

    async def subscribe(self, room_id: str, conn_id: str, subscriber: Subscriber) -> None: ...

    async def unsubscribe(self, room_id: str, conn_id: str) -> None: ...


def _raise_for_error(event: Dict[str, Any]) -> None:
    if event.get("type") != "error":
        return
    code = event.get("code") or "ERROR"
    if code == "STORE_UNAVAILABLE":
        raise PersistenceFailed(code, event.get("message") or "")
    raise ActionRejected(code, event.get("message") or "")


class LocalGateway:
    """
    In-process gateway: calls the dispatcher directly and subscribes through
    the app's WSManager, so sessions and server share one event loop.
    """

    def __init__(self, app) -> None:
        self.app = app

    async def get_room_state(self, room_id: str) -> Dict[str, Any]:
        to_sender, _ = await dispatcher.get_room_state(app=self.app, room_id=room_id)
        first = to_sender[0] if to_sender else {}
        _raise_for_error(first)
        return first

    async def post_room_action(
        self, room_id: str, action: str, user_id: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"action": action, "userId": user_id}
        if data is not None:
            raw["data"] = data
        to_sender, _ = await dispatcher.perform_room_action(app=self.app, room_id=room_id, raw=raw)
        first = to_sender[0] if to_sender else {}
        _raise_for_error(first)
        return first

    async def list_characters(self, limit: int = 500) -> List[Dict[str, Any]]:
        return await self.app.state.repo.list_characters(limit=limit)

    async def subscribe(self, room_id: str, conn_id: str, subscriber: Subscriber) -> None:
        await self.app.state.wsman.add(room_id, conn_id, subscriber)

    async def unsubscribe(self, room_id: str, conn_id: str) -> None:
        await self.app.state.wsman.remove(room_id, conn_id)


def _ws_base(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):]
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):]
    return base_url


class HttpGateway:
    """
    Network gateway for a player process: the room API over HTTP and the
    room channel over /ws/{roomId}, one listener task per subscription.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        ws_url: Optional[str] = None,
        ws_connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self.ws_url = (ws_url or _ws_base(self.base_url)).rstrip("/")
        self._ws_connect = ws_connect or ws_client.connect
        self._listeners: Dict[Tuple[str, str], Tuple[Any, asyncio.Task]] = {}

    async def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise PersistenceFailed("SERVER_UNREACHABLE", f"Room server unreachable: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            _raise_for_error(body)
        if resp.is_error:
            raise ActionRejected(f"HTTP_{resp.status_code}", resp.text)
        return body if isinstance(body, dict) else {}

    # ----------------------------
    # Room API
    # ----------------------------
    async def create_room(self, host_id: str, name: str = "") -> Dict[str, Any]:
        return await self._call("POST", "/rooms", json={"hostId": host_id, "name": name})

    async def join_room(self, code: str, user_id: str, name: str = "", is_spectator: bool = False) -> Dict[str, Any]:
        payload = {"code": code, "userId": user_id, "name": name, "isSpectator": is_spectator}
        return await self._call("POST", "/rooms/join", json=payload)

    async def get_room_state(self, room_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/rooms/{room_id}/state")

    async def post_room_action(
        self, room_id: str, action: str, user_id: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": action, "userId": user_id}
        if data is not None:
            payload["data"] = data
        return await self._call("POST", f"/rooms/{room_id}/state", json=payload)

    async def list_characters(self, limit: int = 500) -> List[Dict[str, Any]]:
        body = await self._call("GET", "/characters", params={"limit": limit})
        return list(body.get("characters") or [])

    # ----------------------------
    # Room channel
    # ----------------------------
    async def subscribe(self, room_id: str, conn_id: str, subscriber: Subscriber) -> None:
        await self.unsubscribe(room_id, conn_id)
        conn = await self._ws_connect(f"{self.ws_url}/ws/{room_id}")
        task = asyncio.get_running_loop().create_task(self._listen(room_id, conn, subscriber))
        self._listeners[(room_id, conn_id)] = (conn, task)

    async def unsubscribe(self, room_id: str, conn_id: str) -> None:
        entry = self._listeners.pop((room_id, conn_id), None)
        if entry is None:
            return
        conn, task = entry
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
        await conn.close()

    async def _listen(self, room_id: str, conn: Any, subscriber: Subscriber) -> None:
        try:
            async for raw in conn:
                try:
                    event = json.loads(raw)
                except ValueError:
                    logger.warning("Room %s: dropping non-JSON frame", room_id)
                    continue
                if not isinstance(event, dict):
                    continue
                try:
                    await subscriber.send_json(event)
                except DraftError as e:
                    logger.warning("Room %s: %s while handling %s", room_id, e.code, event.get("type"))
        except ConnectionClosed:
            logger.info("Room %s channel closed", room_id)

    async def aclose(self) -> None:
        for room_id, conn_id in list(self._listeners):
            await self.unsubscribe(room_id, conn_id)
        if self._owns_client:
            await self.client.aclose()
