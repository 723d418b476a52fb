from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any
from urllib.parse import quote, urlencode

from ..config import Settings
from ..errors import ProviderError
from ..music_types import Track
from .http import fetch_json

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_URL = "https://api.spotify.com/v1"
SPOTIFY_PAGE_SIZE = 100
TOKEN_EXPIRY_MARGIN_SECONDS = 30
PLAYLIST_TRACK_FIELDS = "items(track(id,name,duration_ms,preview_url,is_local,external_urls(spotify),artists(name))),next"


def _track_from_item(item: Any) -> Track | None:
    if not isinstance(item, dict):
        return None
    track = item.get("track") if "track" in item else item
    if not isinstance(track, dict) or track.get("is_local"):
        return None
    track_id = str(track.get("id") or "").strip()
    title = str(track.get("name") or "").strip()
    artists = track.get("artists")
    artist_names = [
        str(artist.get("name") or "").strip()
        for artist in (artists if isinstance(artists, list) else [])
        if isinstance(artist, dict)
    ]
    artist = ", ".join(name for name in artist_names if name)
    if not track_id or not title or not artist:
        return None
    duration_ms = track.get("duration_ms")
    external_urls = track.get("external_urls")
    source_url = (
        str(external_urls.get("spotify") or "").strip() if isinstance(external_urls, dict) else ""
    ) or f"https://open.spotify.com/track/{track_id}"
    return Track(
        provider="spotify",
        id=track_id,
        title=title,
        artist=artist,
        duration_sec=max(1, round(duration_ms / 1000)) if isinstance(duration_ms, int) and duration_ms > 0 else None,
        preview_url=str(track.get("preview_url") or "").strip() or None,
        source_url=source_url,
    )


class SpotifyClient:
    def __init__(self, config: Settings) -> None:
        self._client_id = config.spotify_client_id
        self._client_secret = config.spotify_client_secret
        self._market = config.spotify_market
        self._popular_playlist_id = config.spotify_popular_playlist_id
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def _token(self) -> str | None:
        async with self._token_lock:
            if self._access_token and time.time() < self._token_expires_at:
                return self._access_token

            credentials = base64.b64encode(f"{self._client_id}:{self._client_secret}".encode("utf-8")).decode("ascii")
            payload = await fetch_json(
                SPOTIFY_TOKEN_URL,
                provider="spotify",
                method="POST",
                headers={
                    "Authorization": f"Basic {credentials}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                body=urlencode({"grant_type": "client_credentials"}).encode("utf-8"),
            )
            token = str(payload.get("access_token") or "") if isinstance(payload, dict) else ""
            if not token:
                raise ProviderError("spotify", "token request rejected")
            expires_in = int(payload.get("expires_in") or 3600)
            self._access_token = token
            self._token_expires_at = time.time() + max(60, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
            return token

    async def playlist_tracks(self, playlist_id: str, limit: int = 500) -> list[Track]:
        if not self.enabled or not playlist_id:
            return []
        token = await self._token()
        headers = {"Authorization": f"Bearer {token}"}
        tracks: list[Track] = []
        params = {
            "limit": SPOTIFY_PAGE_SIZE,
            "offset": 0,
            "market": self._market,
            "fields": PLAYLIST_TRACK_FIELDS,
        }
        url: str | None = f"{SPOTIFY_API_URL}/playlists/{quote(playlist_id)}/tracks?{urlencode(params)}"
        while url and len(tracks) < limit:
            payload = await fetch_json(url, provider="spotify", headers=headers)
            if not isinstance(payload, dict):
                break
            items = payload.get("items")
            if not isinstance(items, list) or not items:
                break
            tracks.extend(track for track in (_track_from_item(item) for item in items) if track)
            next_url = payload.get("next")
            url = str(next_url) if isinstance(next_url, str) and next_url else None
        logger.info("spotify_playlist_tracks playlist=%s count=%s", playlist_id, len(tracks))
        return tracks[:limit]

    async def popular_tracks(self, limit: int = 50) -> list[Track]:
        if not self._popular_playlist_id:
            return []
        return await self.playlist_tracks(self._popular_playlist_id, limit)
