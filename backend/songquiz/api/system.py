from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from songquiz.redis_cache import ResolvedTrackStore

router = APIRouter(tags=["system"])


async def _redis_status(store: ResolvedTrackStore) -> str:
    if not store.is_configured:
        return "disabled"
    return "up" if await store.ping() else "down"


@router.get("/api/health")
async def health(request: Request) -> dict[str, object]:
    state = request.app.state
    diagnostics = state.room_store.diagnostics()
    return {
        "ok": True,
        "redis": await _redis_status(state.resolved_track_store),
        "activeRooms": diagnostics["rooms"],
    }


@router.get("/api/diagnostics")
async def diagnostics(request: Request) -> dict[str, object]:
    state = request.app.state
    return {
        "ok": True,
        "redis": await _redis_status(state.resolved_track_store),
        "rooms": state.room_store.diagnostics(),
        "resolver": state.track_resolver.stats(),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
