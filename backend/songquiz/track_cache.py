from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .errors import ProviderError
from .music_types import Track, is_track_playable
from .room_utils import now_ms

logger = logging.getLogger(__name__)

TrackPoolBuilder = Callable[[str, int], Awaitable[list[Track]]]

DEFAULT_TRACK_CACHE_TTL_MS = 5 * 60_000


@dataclass
class TrackCacheEntry:
    tracks: list[Track]
    expires_at_ms: int


class TrackCache:
    """Read-through cache of resolved track pools keyed by category query.

    Pools without a single playable track are never stored. When a rebuild
    fails with a provider error the last known entry is served, even if it
    has expired.
    """

    def __init__(
        self,
        builder: TrackPoolBuilder,
        ttl_ms: int = DEFAULT_TRACK_CACHE_TTL_MS,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._builder = builder
        self._ttl_ms = max(1, int(ttl_ms))
        self._clock = clock
        self._entries: dict[str, TrackCacheEntry] = {}
        self._cache_hits = 0
        self._cache_misses = 0

    @staticmethod
    def _key(category_query: str) -> str:
        return category_query.lower()

    async def get_or_build(self, category_query: str, size: int) -> list[Track]:
        safe_size = max(1, int(size))
        cache_key = self._key(category_query)
        now = self._clock()
        existing = self._entries.get(cache_key)

        if existing is not None and existing.expires_at_ms > now:
            playable_count = sum(1 for track in existing.tracks if is_track_playable(track))
            if playable_count <= 0:
                self._entries.pop(cache_key, None)
                existing = None
            else:
                self._cache_hits += 1
                if len(existing.tracks) >= safe_size:
                    return existing.tracks[:safe_size]

        self._cache_misses += 1

        try:
            tracks = await self._builder(category_query, safe_size)
        except ProviderError as exc:
            logger.error(
                "track_cache_build_failed key=%s size=%s has_stale_entry=%s error=%s",
                cache_key,
                safe_size,
                existing is not None,
                exc,
            )
            if existing is not None:
                return existing.tracks[:safe_size]
            raise

        playable_count = sum(1 for track in tracks if is_track_playable(track))
        if tracks and playable_count > 0:
            self._entries[cache_key] = TrackCacheEntry(tracks=list(tracks), expires_at_ms=now + self._ttl_ms)
        else:
            logger.warning(
                "track_cache_skip_store_unplayable key=%s size=%s track_count=%s playable_count=%s",
                cache_key,
                safe_size,
                len(tracks),
                playable_count,
            )
        return tracks[:safe_size]

    def stats(self) -> dict[str, int]:
        return {
            "entryCount": sum(len(entry.tracks) for entry in self._entries.values()),
            "keyCount": len(self._entries),
            "ttlMs": self._ttl_ms,
            "cacheHits": self._cache_hits,
            "cacheMisses": self._cache_misses,
        }
