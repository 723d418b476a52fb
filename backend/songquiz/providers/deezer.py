from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, urlencode

from ..config import Settings
from ..errors import ProviderRateLimited
from ..music_types import Track
from .http import fetch_json

logger = logging.getLogger(__name__)

DEEZER_API_URL = "https://api.deezer.com"
DEEZER_PAGE_SIZE = 100
# Deezer reports quota exhaustion in the body of a 200 response.
DEEZER_QUOTA_ERROR_CODE = 4


def _track_from_item(item: Any) -> Track | None:
    if not isinstance(item, dict):
        return None
    track_id = item.get("id")
    title = str(item.get("title") or "").strip()
    artist_payload = item.get("artist")
    artist = str(artist_payload.get("name") or "").strip() if isinstance(artist_payload, dict) else ""
    if not track_id or not title or not artist:
        return None
    if item.get("readable") is False:
        return None
    duration = item.get("duration")
    duration_sec = max(1, round(duration)) if isinstance(duration, (int, float)) and duration > 0 else None
    return Track(
        provider="deezer",
        id=str(track_id),
        title=title,
        artist=artist,
        duration_sec=duration_sec,
        preview_url=str(item.get("preview") or "").strip() or None,
        source_url=f"https://www.deezer.com/track/{track_id}",
    )


class DeezerClient:
    def __init__(self, config: Settings) -> None:
        self._enabled = config.deezer_enabled

    async def _get(self, path: str, params: dict[str, Any], *, route: str) -> list[Any]:
        url = f"{DEEZER_API_URL}{path}?{urlencode(params)}"
        payload = await fetch_json(url, provider="deezer")
        if not isinstance(payload, dict):
            return []
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            if error_payload.get("code") == DEEZER_QUOTA_ERROR_CODE:
                raise ProviderRateLimited("deezer", 5_000)
            logger.warning("deezer_error route=%s error=%s", route, error_payload)
            return []
        data = payload.get("data")
        return data if isinstance(data, list) else []

    async def _collect(self, path: str, limit: int, *, route: str) -> list[Track]:
        tracks: list[Track] = []
        index = 0
        while len(tracks) < limit:
            page_size = min(DEEZER_PAGE_SIZE, limit - len(tracks))
            items = await self._get(path, {"limit": page_size, "index": index}, route=route)
            if not items:
                break
            tracks.extend(track for track in (_track_from_item(item) for item in items) if track)
            index += len(items)
            if len(items) < page_size:
                break
        return tracks[:limit]

    async def search(self, query: str, limit: int = 10) -> list[Track]:
        if not self._enabled or not query.strip():
            return []
        items = await self._get("/search", {"q": query, "limit": max(1, min(limit, 50))}, route="search")
        return [track for track in (_track_from_item(item) for item in items) if track]

    async def chart_tracks(self, limit: int = 20) -> list[Track]:
        if not self._enabled:
            return []
        items = await self._get("/chart/0/tracks", {"limit": max(1, min(limit, 100))}, route="chart_tracks")
        return [track for track in (_track_from_item(item) for item in items) if track]

    async def playlist_tracks(self, playlist_id: str, limit: int = 500) -> list[Track]:
        if not self._enabled or not playlist_id:
            return []
        return await self._collect(f"/playlist/{quote(playlist_id)}/tracks", limit, route="playlist_tracks")

    async def user_favorite_tracks(self, user_id: str, limit: int = 100) -> list[Track]:
        if not self._enabled or not user_id:
            return []
        return await self._collect(f"/user/{quote(user_id)}/tracks", limit, route="user_tracks")
