# app/store/redis_repo.py
from __future__ import annotations

import json
from typing import Any, Optional, Iterable

from redis.asyncio import Redis

from app.store.redis_keys import (
    RK,
    CHARACTERS_KEY,
    LEADERBOARD_KEY,
    MATCHES_KEY,
    ratelimit_key,
    room_code_key,
    user_key,
)
from app.store.models import MatchRecord, RoomPlayerStore, RoomStore, UserStore


class RedisRepo:
    def __init__(self, r: Redis):
        self.r = r

    def _dec(self, x):
        """Decode redis bytes -> str; pass through str/int/None safely."""
        if x is None:
            return None
        if isinstance(x, bytes):
            return x.decode("utf-8")
        return x

    def _dec_map(self, d: dict) -> dict:
        return {self._dec(k): self._dec(v) for k, v in d.items()}

    # ----------------------------
    # Room header
    # ----------------------------
    async def reserve_room_code(self, code: str, room_id: str) -> bool:
        """Claim a room code. False if another room already holds it."""
        return bool(await self.r.set(room_code_key(code), room_id, nx=True))

    async def find_room_id_by_code(self, code: str) -> Optional[str]:
        return self._dec(await self.r.get(room_code_key(code)))

    async def create_room(self, room: RoomStore) -> None:
        rk = RK(room.id)
        pipe = self.r.pipeline()
        pipe.delete(rk.players(), rk.state())
        pipe.hset(rk.room(), mapping=room.model_dump(exclude_none=True))
        await pipe.execute()

    async def get_room(self, room_id: str) -> Optional[RoomStore]:
        data = await self.r.hgetall(RK(room_id).room())
        if not data:
            return None
        norm = self._dec_map(data)
        for f in ["max_players", "created_at", "started_at", "last_activity", "player_seq"]:
            if f in norm and norm[f] != "":
                norm[f] = int(norm[f])
        return RoomStore(**norm)

    async def update_room_fields(self, room_id: str, **fields: Any) -> None:
        await self.r.hset(RK(room_id).room(), mapping=fields)

    async def claim_room_end(self, room_id: str, ts: int) -> bool:
        """First `end` of a match wins the claim; later calls get False."""
        return bool(await self.r.hsetnx(RK(room_id).room(), "ended_at", ts))

    async def clear_room_end(self, room_id: str) -> None:
        await self.r.hdel(RK(room_id).room(), "ended_at")

    async def finish_room(self, room_id: str, state: dict[str, Any], ts: int) -> None:
        """FINISHED blob and room status land together or not at all."""
        rk = RK(room_id)
        pipe = self.r.pipeline(transaction=True)
        pipe.set(rk.state(), json.dumps(state))
        pipe.hset(rk.room(), mapping={"status": "FINISHED", "last_activity": ts})
        await pipe.execute()

    async def delete_room(self, room_id: str, code: str) -> None:
        keys = RK(room_id).all_room_keys()
        await self.r.delete(*keys, room_code_key(code))

    async def list_room_ids(self) -> list[str]:
        ids = []
        async for k in self.r.scan_iter(match="room:*", count=200):
            key = self._dec(k)
            # room header keys only: room:<id>
            if key.count(":") == 1:
                ids.append(key.split(":")[1])
        return sorted(set(ids))

    # ----------------------------
    # Players
    # ----------------------------
    async def next_join_seq(self, room_id: str) -> int:
        return int(await self.r.hincrby(RK(room_id).room(), "player_seq", 1))

    async def add_player(self, room_id: str, player: RoomPlayerStore) -> None:
        await self.r.hset(RK(room_id).players(), player.user_id, player.model_dump_json())

    async def remove_player(self, room_id: str, user_id: str) -> bool:
        return bool(await self.r.hdel(RK(room_id).players(), user_id))

    async def get_player(self, room_id: str, user_id: str) -> Optional[RoomPlayerStore]:
        raw = await self.r.hget(RK(room_id).players(), user_id)
        if not raw:
            return None
        return RoomPlayerStore.model_validate_json(self._dec(raw))

    async def list_players(self, room_id: str) -> list[RoomPlayerStore]:
        data = await self.r.hgetall(RK(room_id).players())
        players = [RoomPlayerStore.model_validate_json(self._dec(raw)) for raw in data.values()]
        # stable join order; every client must derive the same ordering
        players.sort(key=lambda p: (p.seq, p.joined_at, p.user_id))
        return players

    # ----------------------------
    # Shared game state blob
    # ----------------------------
    async def get_game_state(self, room_id: str) -> Optional[dict[str, Any]]:
        raw = await self.r.get(RK(room_id).state())
        if raw is None:
            return None
        return json.loads(self._dec(raw))

    async def set_game_state(self, room_id: str, state: dict[str, Any]) -> None:
        await self.r.set(RK(room_id).state(), json.dumps(state))

    async def set_game_state_if_absent(self, room_id: str, state: dict[str, Any]) -> bool:
        """Create-only write. Returns False when some other writer got there first."""
        return bool(await self.r.set(RK(room_id).state(), json.dumps(state), nx=True))

    async def clear_game_state(self, room_id: str) -> None:
        await self.r.delete(RK(room_id).state())

    # ----------------------------
    # Users / leaderboard
    # ----------------------------
    async def ensure_user(self, user_id: str, name: str = "") -> UserStore:
        key = user_key(user_id)
        pipe = self.r.pipeline()
        pipe.hsetnx(key, "id", user_id)
        pipe.hsetnx(key, "wins", 0)
        pipe.hsetnx(key, "losses", 0)
        if name:
            pipe.hset(key, "name", name)
        await pipe.execute()
        return await self.get_user(user_id)  # type: ignore[return-value]

    async def get_user(self, user_id: str) -> Optional[UserStore]:
        data = await self.r.hgetall(user_key(user_id))
        if not data:
            return None
        norm = self._dec_map(data)
        for f in ["wins", "losses"]:
            norm[f] = int(norm.get(f) or 0)
        return UserStore(**norm)

    async def record_result(self, user_id: str, won: bool) -> None:
        key = user_key(user_id)
        pipe = self.r.pipeline()
        pipe.hsetnx(key, "id", user_id)
        if won:
            pipe.hincrby(key, "wins", 1)
            pipe.zincrby(LEADERBOARD_KEY, 1, user_id)
        else:
            pipe.hincrby(key, "losses", 1)
            # keep losers on the board with their current win count
            pipe.zadd(LEADERBOARD_KEY, {user_id: 0}, nx=True)
        await pipe.execute()

    async def get_leaderboard(self, limit: int = 10) -> list[UserStore]:
        ids = await self.r.zrevrange(LEADERBOARD_KEY, 0, max(0, limit - 1))
        out: list[UserStore] = []
        for raw in ids:
            user = await self.get_user(self._dec(raw))
            if user is not None:
                out.append(user)
        return out

    # ----------------------------
    # Match history
    # ----------------------------
    async def append_match(self, record: MatchRecord, max_matches: int = 1000) -> None:
        pipe = self.r.pipeline()
        pipe.rpush(MATCHES_KEY, record.model_dump_json())
        pipe.ltrim(MATCHES_KEY, -max_matches, -1)
        await pipe.execute()

    async def list_matches(self, start: int = 0, end: int = -1) -> list[MatchRecord]:
        raw = await self.r.lrange(MATCHES_KEY, start, end)
        return [MatchRecord.model_validate_json(self._dec(x)) for x in raw]

    # ----------------------------
    # Character catalog
    # ----------------------------
    async def upsert_characters(self, characters: Iterable[dict[str, Any]]) -> int:
        mapping = {str(c["id"]): json.dumps(c) for c in characters}
        if not mapping:
            return 0
        await self.r.hset(CHARACTERS_KEY, mapping=mapping)
        return len(mapping)

    async def list_characters(self, limit: int = 500) -> list[dict[str, Any]]:
        data = await self.r.hgetall(CHARACTERS_KEY)
        chars = [json.loads(self._dec(v)) for v in data.values()]
        # most popular first, same as the catalog ordering clients expect
        chars.sort(key=lambda c: (-int((c.get("stats") or {}).get("favorites") or 0), c.get("id", 0)))
        return chars[:limit]

    # ----------------------------
    # Rate limiting (fixed window)
    # ----------------------------
    async def hit_rate_limit(self, bucket: str, client: str, limit: int, window_sec: int) -> bool:
        """Count one hit. True when the caller is over the limit for this window."""
        key = ratelimit_key(bucket, client)
        count = int(await self.r.incr(key))
        if count == 1:
            await self.r.expire(key, window_sec)
        return count > limit
