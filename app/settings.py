# app/settings.py
from __future__ import annotations

from typing import Any

from pydantic import BaseModel
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    APP_NAME: str = "draft-room-server"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Dev
    LOG_LEVEL: str = "INFO"

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,null"
    # Dev helper: allow any private LAN IP on port 3000
    WS_ALLOW_LAN_ORIGINS: bool = True

    # Rooms
    MAX_PLAYERS: int = 4
    ROOM_CODE_LENGTH: int = 6
    CHAT_HISTORY_LIMIT: int = 200
    MATCH_HISTORY_LIMIT: int = 1000

    # Broadcast channel payload ceiling
    BROADCAST_MAX_BYTES: int = 10240

    # Rate limits (per client IP, fixed window)
    RATE_LIMIT_CREATE: int = 10
    RATE_LIMIT_JOIN: int = 30
    RATE_LIMIT_WINDOW_SEC: int = 60

    # Client session
    PERSIST_DEBOUNCE_MS: int = 300
    STATE_POLL_INTERVAL_SEC: float = 2.0
    STATE_POLL_MAX_SEC: float = 10.0
    CATALOG_LIMIT: int = 500


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "draft-room-server"),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_bool("WS_ALLOW_LAN_ORIGINS", "true"),

        MAX_PLAYERS=int(os.getenv("MAX_PLAYERS", "4")),
        ROOM_CODE_LENGTH=int(os.getenv("ROOM_CODE_LENGTH", "6")),
        CHAT_HISTORY_LIMIT=int(os.getenv("CHAT_HISTORY_LIMIT", "200")),
        MATCH_HISTORY_LIMIT=int(os.getenv("MATCH_HISTORY_LIMIT", "1000")),
        BROADCAST_MAX_BYTES=int(os.getenv("BROADCAST_MAX_BYTES", "10240")),

        RATE_LIMIT_CREATE=int(os.getenv("RATE_LIMIT_CREATE", "10")),
        RATE_LIMIT_JOIN=int(os.getenv("RATE_LIMIT_JOIN", "30")),
        RATE_LIMIT_WINDOW_SEC=int(os.getenv("RATE_LIMIT_WINDOW_SEC", "60")),

        PERSIST_DEBOUNCE_MS=int(os.getenv("PERSIST_DEBOUNCE_MS", "300")),
        STATE_POLL_INTERVAL_SEC=float(os.getenv("STATE_POLL_INTERVAL_SEC", "2.0")),
        STATE_POLL_MAX_SEC=float(os.getenv("STATE_POLL_MAX_SEC", "10.0")),
        CATALOG_LIMIT=int(os.getenv("CATALOG_LIMIT", "500")),
    )


def settings_for(app: Any) -> Settings:
    """Settings attached to the app at startup, or fresh ones from the environment."""
    state = getattr(app, "state", None)
    s = getattr(state, "settings", None)
    return s if isinstance(s, Settings) else get_settings()
