from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Callable

from .errors import ProviderError, ProviderRateLimited
from .music_types import (
    Track,
    dedupe_tracks,
    is_track_playable,
    is_youtube_like,
    track_signature,
    youtube_url_for,
)
from .providers.registry import MusicProviders
from .redis_cache import ResolvedTrackStore
from .room_utils import now_ms
from .track_matching import is_likely_ad_track, score_playback_candidate
from .track_source import ParsedTrackSource, parse_track_source

logger = logging.getLogger(__name__)

MAX_POOL_SIZE = 50


@dataclass(frozen=True)
class ResolverConfig:
    resolve_concurrency: int = 4
    resolve_budget_min: int = 1
    resolve_budget_max: int = 48
    playback_cache_ttl_ms: int = 24 * 60 * 60_000
    playlist_fetch_limit: int = 500
    candidates_per_query: int = 5
    query_fill_limit: int = 10


@dataclass
class _PrioritizeStats:
    direct_attempts: int = 0
    resolved: int = 0
    native: int = 0
    query_filled: int = 0


def clamp_pool_size(size: int) -> int:
    return max(1, min(int(size), MAX_POOL_SIZE))


class TrackPoolResolver:
    def __init__(
        self,
        providers: MusicProviders,
        config: ResolverConfig | None = None,
        *,
        resolved_store: ResolvedTrackStore | None = None,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._providers = providers
        self._config = config or ResolverConfig()
        self._resolved_store = resolved_store
        self._clock = clock
        self._rng = rng or random.Random()
        self._playback_cache: dict[str, tuple[Track, int]] = {}
        self._resolve_attempts = 0
        self._resolve_hits = 0

    @property
    def config(self) -> ResolverConfig:
        return self._config

    def stats(self) -> dict[str, int]:
        return {
            "playbackCacheSize": len(self._playback_cache),
            "resolveAttempts": self._resolve_attempts,
            "resolveHits": self._resolve_hits,
            "resolveConcurrency": self._config.resolve_concurrency,
            "resolveBudgetMax": self._config.resolve_budget_max,
        }

    async def resolve(self, category_query: str, size: int) -> list[Track]:
        safe_size = clamp_pool_size(size)
        parsed = parse_track_source(category_query)

        try:
            if parsed.type == "search":
                candidates = await self._aggregate_search(parsed.query, safe_size)
            else:
                candidates = await self._fetch_source_candidates(parsed, safe_size)
        except ProviderRateLimited:
            raise
        except ProviderError as exc:
            logger.warning(
                "track_source_resolution_failed source=%s query=%r size=%s error=%s",
                parsed.type,
                category_query,
                safe_size,
                exc,
            )
            raise

        if not candidates and parsed.type != "search":
            logger.warning(
                "track_source_empty source=%s query=%r size=%s",
                parsed.type,
                category_query,
                safe_size,
            )
            return []

        return await self._prioritize_playback(
            dedupe_tracks(candidates),
            safe_size,
            fill_query=parsed.query if parsed.type == "search" else "",
        )

    async def _fetch_source_candidates(self, parsed: ParsedTrackSource, size: int) -> list[Track]:
        fetch_size = min(MAX_POOL_SIZE, max(size * 3, size))
        providers = self._providers

        if parsed.type == "spotify_playlist":
            if not parsed.playlist_id:
                return []
            return await providers.spotify_playlist(parsed.playlist_id, self._config.playlist_fetch_limit)
        if parsed.type == "spotify_popular":
            return await providers.spotify_popular(fetch_size)
        if parsed.type == "deezer_playlist":
            if not parsed.playlist_id:
                return []
            return await providers.deezer_playlist(parsed.playlist_id, self._config.playlist_fetch_limit)
        if parsed.type == "deezer_chart":
            return await providers.deezer_chart(fetch_size)
        if parsed.type == "deezer_users":
            return await self._user_union(parsed.user_ids, fetch_size)
        return []

    async def _user_union(self, user_ids: tuple[str, ...], fetch_size: int) -> list[Track]:
        if not user_ids:
            return []
        per_user = max(fetch_size, 25)
        outcomes = await asyncio.gather(
            *(self._providers.deezer_user_tracks(user_id, per_user) for user_id in user_ids),
            return_exceptions=True,
        )

        per_user_tracks: list[list[Track]] = []
        rate_limited: ProviderRateLimited | None = None
        for user_id, outcome in zip(user_ids, outcomes):
            if isinstance(outcome, ProviderRateLimited):
                rate_limited = outcome
                continue
            if isinstance(outcome, ProviderError):
                logger.warning("track_source_user_failed user=%s error=%s", user_id, outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            per_user_tracks.append(list(outcome))

        if not any(per_user_tracks) and rate_limited is not None:
            raise rate_limited

        # Round-robin so every user contributes to the head of the list.
        union: list[Track] = []
        seen: set[str] = set()
        depth = max((len(tracks) for tracks in per_user_tracks), default=0)
        for index in range(depth):
            for tracks in per_user_tracks:
                if index >= len(tracks):
                    continue
                key = track_signature(tracks[index])
                if key in seen:
                    continue
                seen.add(key)
                union.append(tracks[index])
        return union

    async def _aggregate_search(self, query: str, size: int) -> list[Track]:
        if not query.strip() or not self._providers.search_providers:
            return []
        fetch_size = min(MAX_POOL_SIZE, max(size * 3, size))
        names = [name for name, _ in self._providers.search_providers]
        outcomes = await asyncio.gather(
            *(search(query, fetch_size) for _, search in self._providers.search_providers),
            return_exceptions=True,
        )

        results: list[Track] = []
        seen: set[str] = set()
        failures: list[ProviderError] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, ProviderError):
                failures.append(outcome)
                logger.warning("music_search_provider_failed provider=%s query=%r error=%s", name, query, outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for track in outcome:
                key = track_signature(track)
                if key in seen:
                    continue
                seen.add(key)
                results.append(track)

        if not results and failures and len(failures) == len(names):
            rate_limited = next((item for item in failures if isinstance(item, ProviderRateLimited)), None)
            raise rate_limited or failures[0]
        return results

    def _cached_playback(self, key: str) -> Track | None:
        cached = self._playback_cache.get(key)
        if cached is None:
            return None
        track, expires_at = cached
        if expires_at > self._clock():
            return track
        self._playback_cache.pop(key, None)
        return None

    def _remember_playback(self, key: str, track: Track) -> None:
        self._playback_cache[key] = (track, self._clock() + self._config.playback_cache_ttl_ms)

    async def resolve_playback(self, track: Track) -> Track | None:
        if is_likely_ad_track(track):
            return None

        if is_youtube_like(track):
            return replace(
                track,
                provider="youtube",
                source_url=track.source_url or youtube_url_for(track.id),
                preview_url=None,
            )

        if is_track_playable(track):
            return track

        key = track_signature(track)
        cached = self._cached_playback(key)
        if cached is not None:
            return cached

        if self._resolved_store is not None:
            stored = await self._resolved_store.get(key)
            if stored is not None:
                self._remember_playback(key, stored)
                return stored

        self._resolve_attempts += 1
        query_variants = list(
            dict.fromkeys(
                query.strip()
                for query in (
                    f"{track.title} {track.artist} official audio",
                    f"{track.artist} {track.title}",
                )
                if query.strip()
            )
        )

        candidates: dict[str, Track] = {}
        for query in query_variants:
            for candidate in await self._providers.youtube_search(query, self._config.candidates_per_query):
                if is_likely_ad_track(candidate):
                    continue
                candidate_key = candidate.id.strip().lower()
                if not candidate_key or candidate_key in candidates:
                    continue
                candidates[candidate_key] = candidate

        scored = [
            (score_playback_candidate(track, candidate), candidate)
            for candidate in candidates.values()
        ]
        scored = [item for item in scored if item[0].acceptable]
        if not scored:
            return None
        scored.sort(key=lambda item: (item[0].score, item[0].title_overlap), reverse=True)
        selected = scored[0][1]

        resolved = Track(
            provider="youtube",
            id=selected.id,
            title=track.title,
            artist=track.artist,
            duration_sec=track.duration_sec,
            source_url=selected.source_url or youtube_url_for(selected.id),
        )
        self._resolve_hits += 1
        self._remember_playback(key, resolved)
        if self._resolved_store is not None:
            await self._resolved_store.set(key, resolved)
        return resolved

    async def _prioritize_playback(self, tracks: list[Track], size: int, *, fill_query: str) -> list[Track]:
        safe_size = max(1, size)
        sanitized = [track for track in tracks if not is_likely_ad_track(track)]
        shuffled = list(sanitized)
        self._rng.shuffle(shuffled)
        ordered = [track for track in shuffled if track.preview_url] + [
            track for track in shuffled if not track.preview_url
        ]
        scoped = ordered[: max(safe_size * 3, safe_size)]

        result: list[Track] = []
        seen: set[str] = set()
        stats = _PrioritizeStats()
        resolve_budget = min(
            len(scoped),
            max(
                self._config.resolve_budget_min,
                min(self._config.resolve_budget_max, max(safe_size * 2, safe_size * 4)),
            ),
        )
        candidates = scoped[:resolve_budget]
        cursor = 0
        rate_limited: ProviderRateLimited | None = None

        async def worker() -> None:
            nonlocal cursor, rate_limited
            while len(result) < safe_size and rate_limited is None:
                if cursor >= len(candidates):
                    return
                track = candidates[cursor]
                cursor += 1
                key = track_signature(track)
                if key in seen:
                    continue
                seen.add(key)
                stats.direct_attempts += 1
                try:
                    playback = await self.resolve_playback(track)
                except ProviderRateLimited as exc:
                    rate_limited = exc
                    return
                except ProviderError as exc:
                    logger.warning("track_playback_resolve_failed signature=%s error=%s", key, exc)
                    continue
                if playback is None or len(result) >= safe_size:
                    continue
                if playback is track:
                    stats.native += 1
                else:
                    stats.resolved += 1
                result.append(playback)

        worker_count = min(max(1, self._config.resolve_concurrency), len(candidates))
        if worker_count > 0:
            await asyncio.gather(*(worker() for _ in range(worker_count)))

        if fill_query.strip() and len(result) < safe_size and rate_limited is None:
            rate_limited = await self._query_fill(fill_query, safe_size, result, seen, stats)

        if not result and rate_limited is not None:
            raise rate_limited

        logger.info(
            "track_source_playback_priority requested=%s input=%s output=%s native=%s resolved=%s "
            "query_filled=%s attempts=%s budget=%s",
            safe_size,
            len(tracks),
            len(result),
            stats.native,
            stats.resolved,
            stats.query_filled,
            stats.direct_attempts,
            resolve_budget,
        )
        return dedupe_tracks(result, safe_size)

    async def _query_fill(
        self,
        fill_query: str,
        size: int,
        result: list[Track],
        seen: set[str],
        stats: _PrioritizeStats,
    ) -> ProviderRateLimited | None:
        fill_queries = list(
            dict.fromkeys(query.strip() for query in (fill_query, f"{fill_query} official audio") if query.strip())
        )
        for query in fill_queries:
            if len(result) >= size:
                break
            try:
                found = await self._providers.youtube_search(query, min(self._config.query_fill_limit, size))
            except ProviderRateLimited as exc:
                return exc
            except ProviderError as exc:
                logger.warning("track_query_fill_failed query=%r error=%s", query, exc)
                break
            for track in dedupe_tracks(found):
                if len(result) >= size:
                    break
                if is_likely_ad_track(track):
                    continue
                key = track_signature(track)
                if key in seen:
                    continue
                seen.add(key)
                stats.query_filled += 1
                result.append(track)
        return None
