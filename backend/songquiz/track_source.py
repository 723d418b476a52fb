from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import unquote

TrackSourceType = Literal[
    "search",
    "spotify_playlist",
    "spotify_popular",
    "deezer_playlist",
    "deezer_chart",
    "deezer_users",
]

SPOTIFY_PLAYLIST_PREFIX = "spotify:playlist:"
SPOTIFY_POPULAR_PREFIX = "spotify:popular"
DEEZER_PLAYLIST_PREFIX = "deezer:playlist:"
DEEZER_CHART_PREFIX = "deezer:chart"
DEEZER_USERS_PREFIX = "deezer:users:"
MAX_UNION_USERS = 8

_SPOTIFY_URI_ID = re.compile(r"spotify:playlist:([a-zA-Z0-9]+)", re.IGNORECASE)
_SPOTIFY_URL_ID = re.compile(r"spotify\.com/(?:intl-[a-z]{2}/)?playlist/([a-zA-Z0-9]+)", re.IGNORECASE)
_DEEZER_URL_ID = re.compile(r"deezer\.com/(?:[a-z]{2}/)?playlist/([0-9]+)", re.IGNORECASE)
_DEEZER_USER_URL_ID = re.compile(r"deezer\.com/(?:[a-z]{2}/)?profile/([0-9]+)", re.IGNORECASE)
_QUERY_OR_FRAGMENT = re.compile(r"[?#].*$")


@dataclass(frozen=True)
class ParsedTrackSource:
    type: TrackSourceType
    original: str
    query: str = ""
    playlist_id: str = ""
    user_ids: tuple[str, ...] = field(default_factory=tuple)


def _safe_unquote(value: str) -> str:
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def normalize_spotify_playlist_id(raw: str) -> str:
    trimmed = raw.strip()
    if not trimmed:
        return ""
    decoded = _safe_unquote(trimmed)
    from_uri = _SPOTIFY_URI_ID.search(decoded)
    if from_uri:
        return from_uri.group(1)
    from_url = _SPOTIFY_URL_ID.search(decoded)
    if from_url:
        return from_url.group(1)
    return _QUERY_OR_FRAGMENT.sub("", decoded).strip()


def normalize_deezer_playlist_id(raw: str) -> str:
    trimmed = raw.strip()
    if not trimmed:
        return ""
    decoded = _safe_unquote(trimmed)
    from_url = _DEEZER_URL_ID.search(decoded)
    if from_url:
        return from_url.group(1)
    return _QUERY_OR_FRAGMENT.sub("", decoded).strip()


def normalize_deezer_user_id(raw: str) -> str:
    decoded = _safe_unquote(raw.strip())
    from_url = _DEEZER_USER_URL_ID.search(decoded)
    if from_url:
        return from_url.group(1)
    return _QUERY_OR_FRAGMENT.sub("", decoded).strip()


def _parse_user_ids(raw: str) -> tuple[str, ...]:
    user_ids: list[str] = []
    for part in raw.split(","):
        user_id = normalize_deezer_user_id(part)
        if user_id and user_id not in user_ids:
            user_ids.append(user_id)
    return tuple(user_ids[:MAX_UNION_USERS])


def parse_track_source(category_query: str) -> ParsedTrackSource:
    trimmed = (category_query or "").strip()
    lower = trimmed.lower()

    if lower.startswith(SPOTIFY_PLAYLIST_PREFIX):
        return ParsedTrackSource(
            type="spotify_playlist",
            original=category_query,
            playlist_id=normalize_spotify_playlist_id(trimmed[len(SPOTIFY_PLAYLIST_PREFIX) :]),
        )

    if lower == SPOTIFY_POPULAR_PREFIX:
        return ParsedTrackSource(type="spotify_popular", original=category_query)

    if lower.startswith(DEEZER_PLAYLIST_PREFIX):
        return ParsedTrackSource(
            type="deezer_playlist",
            original=category_query,
            playlist_id=normalize_deezer_playlist_id(trimmed[len(DEEZER_PLAYLIST_PREFIX) :]),
        )

    if lower == DEEZER_CHART_PREFIX:
        return ParsedTrackSource(type="deezer_chart", original=category_query)

    if lower.startswith(DEEZER_USERS_PREFIX):
        return ParsedTrackSource(
            type="deezer_users",
            original=category_query,
            user_ids=_parse_user_ids(trimmed[len(DEEZER_USERS_PREFIX) :]),
        )

    return ParsedTrackSource(type="search", original=category_query, query=trimmed)
