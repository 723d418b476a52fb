from __future__ import annotations

import html
import re
from typing import Any
from urllib.parse import urlencode

from ..config import Settings
from ..music_types import Track, youtube_url_for
from .http import fetch_json

YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
_TOPIC_SUFFIX = re.compile(r"\s*-\s*topic$", re.IGNORECASE)
_VEVO_SUFFIX = re.compile(r"vevo$", re.IGNORECASE)


def _clean_channel_title(raw: str) -> str:
    channel = _TOPIC_SUFFIX.sub("", raw.strip())
    if channel.lower() != "vevo":
        channel = _VEVO_SUFFIX.sub("", channel)
    return channel.strip()


def _track_from_item(item: Any) -> Track | None:
    if not isinstance(item, dict):
        return None
    id_payload = item.get("id")
    snippet = item.get("snippet")
    video_id = str(id_payload.get("videoId") or "").strip() if isinstance(id_payload, dict) else ""
    if not video_id or not isinstance(snippet, dict):
        return None
    title = html.unescape(str(snippet.get("title") or "")).strip()
    artist = _clean_channel_title(html.unescape(str(snippet.get("channelTitle") or "")))
    if not title:
        return None
    return Track(
        provider="youtube",
        id=video_id,
        title=title,
        artist=artist,
        source_url=youtube_url_for(video_id),
    )


class YouTubeClient:
    def __init__(self, config: Settings) -> None:
        self._api_key = config.youtube_api_key

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str, limit: int = 5) -> list[Track]:
        if not self.enabled or not query.strip():
            return []
        params = {
            "part": "snippet",
            "type": "video",
            "videoEmbeddable": "true",
            "videoCategoryId": "10",
            "maxResults": max(1, min(limit, 50)),
            "q": query,
            "key": self._api_key,
        }
        payload = await fetch_json(f"{YOUTUBE_SEARCH_URL}?{urlencode(params)}", provider="youtube")
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [track for track in (_track_from_item(item) for item in items) if track]
