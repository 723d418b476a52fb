from __future__ import annotations

from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from songquiz.api.router import api_router
from songquiz.config import Settings, settings
from songquiz.providers.registry import MusicProviders, build_music_providers
from songquiz.redis_cache import ResolvedTrackStore
from songquiz.room_store import GameConfig, RoomStore
from songquiz.room_utils import now_ms
from songquiz.track_cache import TrackCache
from songquiz.track_resolver import ResolverConfig, TrackPoolResolver


def create_app(
    config: Settings = settings,
    *,
    providers: MusicProviders | None = None,
    clock: Callable[[], int] = now_ms,
    game_config: GameConfig | None = None,
) -> FastAPI:
    app = FastAPI(title="SongQuiz Backend", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    resolved_track_store = ResolvedTrackStore(config.redis_url, config.redis_resolved_track_ttl_seconds)
    track_resolver = TrackPoolResolver(
        providers if providers is not None else build_music_providers(config),
        ResolverConfig(
            resolve_concurrency=config.resolve_concurrency,
            resolve_budget_max=config.resolve_budget_max,
        ),
        resolved_store=resolved_track_store,
        clock=clock,
    )
    track_cache = TrackCache(track_resolver.resolve, config.track_cache_ttl_ms, clock=clock)
    room_store = RoomStore(
        track_cache,
        game_config or GameConfig.from_settings(config),
        clock=clock,
    )

    app.state.resolved_track_store = resolved_track_store
    app.state.track_resolver = track_resolver
    app.state.track_cache = track_cache
    app.state.room_store = room_store

    app.include_router(api_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        await resolved_track_store.connect()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await room_store.shutdown()
        await resolved_track_store.close()

    return app
