# app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from app.settings import Settings, get_settings
from app.store.redis_repo import RedisRepo
from app.transport.admin import router as admin_router
from app.transport.broadcast import RoomBroadcaster
from app.transport.rooms import router as rooms_router
from app.transport.ws import router as ws_router
from app.transport.ws_manager import WSManager


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        r = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        app.state.redis = r
        app.state.repo = RedisRepo(r)
        app.state.wsman = WSManager()
        app.state.broadcaster = RoomBroadcaster(app.state.wsman, max_bytes=settings.BROADCAST_MAX_BYTES)
        await r.ping()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        r: Redis = app.state.redis
        await r.close()

    @app.get("/health")
    async def health():
        r: Redis = app.state.redis
        pong = await r.ping()
        return {"ok": True, "redis": str(pong)}

    app.include_router(rooms_router)
    app.include_router(ws_router)
    app.include_router(admin_router)
    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


app = create_app()
