from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.client.debounce import Debouncer
from app.client.gateway import RoomGateway
from app.domain.common.errors import ActionRejected, CatalogUnavailable, DraftError, PersistenceFailed
from app.domain.draft import turns
from app.domain.draft.merge import merge_state
from app.domain.draft.models import (
    Character,
    ChatEntry,
    GradingState,
    MatchResults,
    dump_state,
    load_state,
    try_load_state,
)
from app.domain.draft.pool import list_universes
from app.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class DraftSession:
    """
    One player's view of a room.

    Local moves are applied at once, persisted after a short debounce, and
    reach the other players through the room channel, where they are merged
    into each receiver's copy. There is no referee: whoever acts computes the
    next state.
    """

    def __init__(
        self,
        gateway: RoomGateway,
        room_id: str,
        user_id: str,
        *,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.room_id = room_id
        self.user_id = user_id
        self.settings = settings or get_settings()
        self.rng = rng
        self._sleep = sleep

        self.catalog: List[Character] = []
        self.room: Dict[str, Any] = {}
        self.state = None
        self.results: Optional[MatchResults] = None

        self._conn_id = f"session-{uuid.uuid4().hex[:8]}"
        self._persist = Debouncer(self.settings.PERSIST_DEBOUNCE_MS / 1000.0, self._write_state)
        self._finishing = False
        self._poll_task: Optional[asyncio.Task] = None

    # ----------------------------
    # Views
    # ----------------------------
    @property
    def is_host(self) -> bool:
        return bool(self.room) and self.room.get("hostId") == self.user_id

    @property
    def is_my_turn(self) -> bool:
        return turns.is_players_turn(self.state, self.user_id) if self.state is not None else False

    @property
    def universes(self) -> List[str]:
        return list_universes(self.catalog)

    @property
    def messages(self) -> List[ChatEntry]:
        return list(self.state.messages) if self.state is not None else []

    # ----------------------------
    # Setup
    # ----------------------------
    async def connect(self, *, max_attempts: Optional[int] = None) -> None:
        """Load the catalog, subscribe to the room and obtain the shared state."""
        await self.load_catalog()
        await self.gateway.subscribe(self.room_id, self._conn_id, self)
        await self.refresh()
        if self.room.get("status") == "DRAFTING":
            await self.ensure_state(max_attempts=max_attempts)

    async def load_catalog(self) -> List[Character]:
        try:
            raw = await self.gateway.list_characters(limit=self.settings.CATALOG_LIMIT)
        except Exception as e:
            raise CatalogUnavailable("CATALOG_UNAVAILABLE", f"Character catalog could not be loaded: {e}") from e

        chars: List[Character] = []
        for entry in raw or []:
            try:
                chars.append(Character.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed catalog entry %r", entry.get("id") if isinstance(entry, dict) else entry)
        if not chars:
            raise CatalogUnavailable("CATALOG_EMPTY", "Character catalog is empty")
        self.catalog = chars
        return chars

    async def refresh(self) -> Dict[str, Any]:
        """Re-read room + persisted state. The persisted state replaces ours."""
        view = await self.gateway.get_room_state(self.room_id)
        self.room = {k: v for k, v in view.items() if k != "gameState"}
        blob = view.get("gameState")
        if blob is not None:
            state = try_load_state(blob)
            if state is not None:
                self.state = state
        return view

    async def ensure_state(self, *, max_attempts: Optional[int] = None) -> None:
        """
        Host seeds the SETUP state (create-if-absent, adopts whatever won).
        Everyone else polls with backoff until the host's state shows up.
        """
        if self.state is not None:
            return

        if self.is_host:
            ids = [p["userId"] for p in self.room.get("players", []) if not p.get("isSpectator")]
            setup = turns.init_setup_state(ids)
            resp = await self.gateway.post_room_action(self.room_id, "initState", self.user_id, dump_state(setup))
            self.state = load_state(resp.get("state") or dump_state(setup))
            return

        delay = self.settings.STATE_POLL_INTERVAL_SEC
        attempts = 0
        while self.state is None:
            if max_attempts is not None and attempts >= max_attempts:
                raise DraftError("STATE_TIMEOUT", "Host never created the game state")
            await self._sleep(delay)
            attempts += 1
            await self.refresh()
            delay = min(delay * 1.5, self.settings.STATE_POLL_MAX_SEC)

    def _start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_for_state())

    async def _poll_for_state(self) -> None:
        try:
            await self.ensure_state()
        except Exception as e:
            logger.warning("Room %s: gave up waiting for the game state: %s", self.room_id, e)

    def _stop_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def start_game(self) -> None:
        """Host: move the room into DRAFTING and seed a fresh state."""
        await self.gateway.post_room_action(self.room_id, "start", self.user_id)
        self.state = None
        self.results = None
        self._finishing = False
        await self.refresh()
        await self.ensure_state()

    # ----------------------------
    # Moves
    # ----------------------------
    async def select_universes(self, universes) -> None:
        await self._apply(turns.set_universes(self.state, universes, is_host=self.is_host))

    async def start_draft(self) -> None:
        await self._apply(turns.start_draft(self.state, self.catalog, is_host=self.is_host))

    async def draw(self) -> Optional[Character]:
        await self._apply(turns.draw(self.state, self.user_id, self.catalog, self.rng))
        return self.state.current_draw

    async def place(self, slot_index: int) -> None:
        await self._apply(turns.place(self.state, self.user_id, slot_index))

    async def skip(self) -> None:
        await self._apply(turns.skip(self.state, self.user_id))

    async def send_chat(self, text: str) -> None:
        await self.gateway.post_room_action(self.room_id, "chatMessage", self.user_id, {"text": text})

    async def _apply(self, outcome) -> None:
        self._raise_write_failure()
        new_state, err = outcome
        if err:
            raise ActionRejected(err)
        self._commit(new_state)
        if isinstance(self.state, GradingState):
            await self._finish()

    def _commit(self, new_state) -> None:
        rev = (self.state.rev if self.state is not None else 0) + 1
        self.state = new_state.model_copy(update={"rev": rev, "updated_by": self.user_id})
        self._persist.push(dump_state(self.state))

    async def _finish(self) -> None:
        """Grade, write the FINISHED state, then close the match on the server."""
        if self._finishing:
            return
        self._finishing = True
        finished, err = turns.grade(self.state)
        if err:
            self._finishing = False
            return
        self._commit(finished)
        await self._persist.flush()
        self.results = finished.results
        try:
            await self.gateway.post_room_action(
                self.room_id,
                "end",
                self.user_id,
                finished.results.model_dump(by_alias=True, mode="json"),
            )
        except ActionRejected as e:
            if e.code != "ALREADY_FINISHED":
                raise
            logger.info("Room %s was already ended by another player", self.room_id)

    async def _write_state(self, blob: Dict[str, Any]) -> None:
        await self.gateway.post_room_action(self.room_id, "updateState", self.user_id, blob)

    async def flush(self) -> None:
        await self._persist.flush()
        self._raise_write_failure()

    def _raise_write_failure(self) -> None:
        """A debounced write that failed in the background fails the next action."""
        err = self._persist.take_error()
        if err is None:
            return
        if isinstance(err, PersistenceFailed):
            raise err
        raise PersistenceFailed(getattr(err, "code", "PERSIST_FAILED"), str(err)) from err

    # ----------------------------
    # Room channel
    # ----------------------------
    async def send_json(self, data: Any) -> None:
        """Subscriber hook, so the session can sit in the room's WSManager."""
        await self.handle_event(data)

    async def handle_event(self, event: Dict[str, Any]) -> None:
        etype = event.get("type")

        if etype == "state-updated":
            if event.get("truncated"):
                await self.refresh()
            else:
                self.state = merge_state(self.state, event.get("state") or {}, self_id=self.user_id)
            if isinstance(self.state, GradingState) and self.is_host:
                await self._finish()
            return

        if etype == "game-started":
            started = event.get("startedAt")
            known = self.room.get("startedAt")
            if self.state is not None and known and started in (None, known):
                # redelivered start of the match we already hold
                return
            self._persist.cancel()
            self.state = None
            self.results = None
            self._finishing = False
            self.room["status"] = "DRAFTING"
            if started:
                self.room["startedAt"] = started
            if not self.is_host:
                await self.refresh()
                if self.state is None:
                    self._start_polling()
            return

        if etype == "game-ended":
            self.results = MatchResults.model_validate(event.get("results") or {})
            self.room["status"] = "FINISHED"
            return

        if etype == "player-joined":
            room = event.get("room") or {}
            self.room.update({k: v for k, v in room.items() if k not in ("type", "gameState")})
            return

        if etype == "player-left":
            uid = event.get("userId")
            self.room["players"] = [p for p in self.room.get("players", []) if p.get("userId") != uid]
            if event.get("hostId"):
                self.room["hostId"] = event["hostId"]
            return

        if etype == "chat-message" and self.state is not None:
            entry = ChatEntry.model_validate(event.get("message") or {})
            if entry not in self.state.messages:
                msgs = list(self.state.messages) + [entry]
                self.state = self.state.model_copy(update={"messages": msgs[-self.settings.CHAT_HISTORY_LIMIT:]})
            return

    async def leave(self) -> Dict[str, Any]:
        self._persist.cancel()
        self._stop_polling()
        try:
            return await self.gateway.post_room_action(self.room_id, "leave", self.user_id)
        finally:
            await self.gateway.unsubscribe(self.room_id, self._conn_id)

    async def close(self) -> None:
        """Write anything still pending, then drop the subscription."""
        try:
            await self._persist.flush()
        finally:
            self._persist.cancel()
            self._stop_polling()
            await self.gateway.unsubscribe(self.room_id, self._conn_id)
