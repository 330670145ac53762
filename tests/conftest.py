import json
from typing import Any, Dict, List, Optional

import pytest

from app.domain.draft.models import Character
from app.settings import Settings
from app.store.models import MatchRecord, RoomPlayerStore, RoomStore, UserStore
from app.transport.broadcast import RoomBroadcaster
from app.transport.ws_manager import WSManager


class FakeRepo:
    """In-memory stand-in for RedisRepo, same async surface."""

    def __init__(self):
        self.rooms: Dict[str, RoomStore] = {}
        self.codes: Dict[str, str] = {}
        self.players: Dict[str, Dict[str, RoomPlayerStore]] = {}
        self.seq: Dict[str, int] = {}
        self.states: Dict[str, str] = {}
        self.ended: Dict[str, int] = {}
        self.users: Dict[str, UserStore] = {}
        self.matches: List[MatchRecord] = []
        self.characters: Dict[str, Dict[str, Any]] = {}
        self.hits: Dict[str, int] = {}

    # rooms
    async def reserve_room_code(self, code, room_id):
        if code in self.codes:
            return False
        self.codes[code] = room_id
        return True

    async def find_room_id_by_code(self, code):
        return self.codes.get(code)

    async def create_room(self, room):
        self.rooms[room.id] = room
        self.players[room.id] = {}

    async def get_room(self, room_id):
        room = self.rooms.get(room_id)
        return room.model_copy() if room else None

    async def update_room_fields(self, room_id, **fields):
        room = self.rooms[room_id]
        self.rooms[room_id] = room.model_copy(update=fields)

    async def claim_room_end(self, room_id, ts):
        if room_id in self.ended:
            return False
        self.ended[room_id] = ts
        return True

    async def clear_room_end(self, room_id):
        self.ended.pop(room_id, None)

    async def finish_room(self, room_id, state, ts):
        self.states[room_id] = json.dumps(state)
        await self.update_room_fields(room_id, status="FINISHED", last_activity=ts)

    async def delete_room(self, room_id, code):
        self.rooms.pop(room_id, None)
        self.players.pop(room_id, None)
        self.states.pop(room_id, None)
        self.codes.pop(code, None)

    async def list_room_ids(self):
        return sorted(self.rooms)

    # players
    async def next_join_seq(self, room_id):
        self.seq[room_id] = self.seq.get(room_id, 0) + 1
        return self.seq[room_id]

    async def add_player(self, room_id, player):
        self.players.setdefault(room_id, {})[player.user_id] = player

    async def remove_player(self, room_id, user_id):
        return self.players.get(room_id, {}).pop(user_id, None) is not None

    async def get_player(self, room_id, user_id):
        return self.players.get(room_id, {}).get(user_id)

    async def list_players(self, room_id):
        return sorted(self.players.get(room_id, {}).values(), key=lambda p: (p.seq, p.joined_at, p.user_id))

    # state blob, kept serialized like the real store
    async def get_game_state(self, room_id):
        raw = self.states.get(room_id)
        return json.loads(raw) if raw is not None else None

    async def set_game_state(self, room_id, state):
        self.states[room_id] = json.dumps(state)

    async def set_game_state_if_absent(self, room_id, state):
        if room_id in self.states:
            return False
        self.states[room_id] = json.dumps(state)
        return True

    async def clear_game_state(self, room_id):
        self.states.pop(room_id, None)

    # users
    async def ensure_user(self, user_id, name=""):
        user = self.users.get(user_id) or UserStore(id=user_id)
        if name:
            user = user.model_copy(update={"name": name})
        self.users[user_id] = user
        return user

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def record_result(self, user_id, won):
        user = self.users.get(user_id) or UserStore(id=user_id)
        if won:
            user = user.model_copy(update={"wins": user.wins + 1})
        else:
            user = user.model_copy(update={"losses": user.losses + 1})
        self.users[user_id] = user

    async def get_leaderboard(self, limit=10):
        return sorted(self.users.values(), key=lambda u: -u.wins)[:limit]

    async def append_match(self, record, max_matches=1000):
        self.matches.append(record)
        self.matches = self.matches[-max_matches:]

    async def list_matches(self, start=0, end=-1):
        return list(self.matches)

    # catalog
    async def upsert_characters(self, characters):
        n = 0
        for c in characters:
            self.characters[str(c["id"])] = c
            n += 1
        return n

    async def list_characters(self, limit=500):
        chars = sorted(
            self.characters.values(),
            key=lambda c: (-int((c.get("stats") or {}).get("favorites") or 0), c.get("id", 0)),
        )
        return chars[:limit]

    async def hit_rate_limit(self, bucket, client, limit, window_sec):
        key = f"{bucket}:{client}"
        self.hits[key] = self.hits.get(key, 0) + 1
        return self.hits[key] > limit


class RecordingSubscriber:
    def __init__(self):
        self.events: List[dict] = []

    async def send_json(self, data):
        self.events.append(data)

    def types(self):
        return [e.get("type") for e in self.events]


class FakeApp:
    def __init__(self, repo: Optional[FakeRepo] = None, settings: Optional[Settings] = None):
        wsman = WSManager()
        self.state = type("State", (), {})()
        self.state.repo = repo or FakeRepo()
        self.state.settings = settings or Settings(PERSIST_DEBOUNCE_MS=10)
        self.state.wsman = wsman
        self.state.broadcaster = RoomBroadcaster(wsman, max_bytes=self.state.settings.BROADCAST_MAX_BYTES)


def make_catalog(universes=("Naruto", "One Piece"), per_universe=12) -> List[Character]:
    out = []
    cid = 1
    for uni in universes:
        for n in range(per_universe):
            out.append(
                Character.model_validate(
                    {
                        "id": cid,
                        "name": f"{uni} #{n}",
                        "imageUrl": f"https://img.example/{cid}.png",
                        "animeUniverse": uni,
                        "stats": {"favorites": 1000 + cid * 37},
                    }
                )
            )
            cid += 1
    return out


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def app(repo):
    return FakeApp(repo)


@pytest.fixture
def catalog():
    return make_catalog()
