# app/store/redis_keys.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RK:
    """
    Redis Key builder for room-scoped keys.
    """
    room_id: str

    def room(self) -> str:
        return f"room:{self.room_id}"  # HASH

    def players(self) -> str:
        return f"room:{self.room_id}:players"  # HASH user_id -> JSON

    def state(self) -> str:
        return f"room:{self.room_id}:state"  # STRING shared game state JSON

    def all_room_keys(self) -> list[str]:
        return [self.room(), self.players(), self.state()]


# ---- Global keys ----

def room_code_key(code: str) -> str:
    return f"roomcode:{code}"  # STRING code -> room_id


def user_key(user_id: str) -> str:
    return f"user:{user_id}"  # HASH


LEADERBOARD_KEY = "leaderboard:wins"  # ZSET user_id -> wins
CHARACTERS_KEY = "characters"  # HASH id -> JSON
MATCHES_KEY = "matches"  # LIST MatchRecord JSON


def ratelimit_key(bucket: str, client: str) -> str:
    return f"ratelimit:{bucket}:{client}"  # STRING counter with expiry
