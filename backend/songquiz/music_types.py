from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Literal

MusicProvider = Literal["spotify", "deezer", "youtube"]

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v="


@dataclass(frozen=True)
class Track:
    provider: MusicProvider
    id: str
    title: str
    artist: str
    duration_sec: int | None = None
    preview_url: str | None = None
    source_url: str | None = None
    audio_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        return {
            "provider": payload["provider"],
            "id": payload["id"],
            "title": payload["title"],
            "artist": payload["artist"],
            "durationSec": payload["duration_sec"],
            "previewUrl": payload["preview_url"],
            "sourceUrl": payload["source_url"],
            "audioUrl": payload["audio_url"],
        }


ProviderSearchFn = Callable[[str, int], Awaitable[list[Track]]]


def track_signature(track: Track) -> str:
    return f"{track.title.strip().lower()}::{track.artist.strip().lower()}"


def track_identity_key(track: Track) -> str:
    return f"{track.provider}::{track.id.strip().lower()}::{track_signature(track)}"


def is_youtube_like(track: Track) -> bool:
    if track.provider == "youtube":
        return True
    source = (track.source_url or "").lower()
    return "youtube.com/watch" in source or "youtu.be/" in source


def youtube_url_for(video_id: str) -> str:
    return f"{YOUTUBE_WATCH_URL}{video_id}"


def is_track_playable(track: Track) -> bool:
    if is_youtube_like(track):
        return bool(track.id.strip() or track.source_url)
    return bool(track.preview_url or track.audio_url)


def dedupe_tracks(tracks: list[Track], size: int | None = None) -> list[Track]:
    seen: set[str] = set()
    result: list[Track] = []
    for track in tracks:
        if size is not None and len(result) >= size:
            break
        key = track_identity_key(track)
        if key in seen:
            continue
        seen.add(key)
        result.append(track)
    return result
