from __future__ import annotations

import asyncio
import random

import pytest

from conftest import FakeClock, make_track
from songquiz.errors import ProviderError, ProviderRateLimited
from songquiz.music_types import Track
from songquiz.providers.registry import MusicProviders
from songquiz.track_resolver import ResolverConfig, TrackPoolResolver


class FakeYouTube:
    def __init__(self, catalog: dict[str, list[Track]] | None = None) -> None:
        self.catalog = catalog or {}
        self.queries: list[tuple[str, int]] = []
        self.error: Exception | None = None

    async def search(self, query: str, limit: int) -> list[Track]:
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return self.catalog.get(query, [])[:limit]


def youtube_video(video_id: str, title: str, artist: str) -> Track:
    return Track(
        provider="youtube",
        id=video_id,
        title=title,
        artist=artist,
        source_url=f"https://www.youtube.com/watch?v={video_id}",
    )


def make_resolver(providers: MusicProviders, clock: FakeClock | None = None) -> TrackPoolResolver:
    return TrackPoolResolver(
        providers,
        ResolverConfig(resolve_concurrency=2),
        clock=clock or FakeClock(),
        rng=random.Random(3),
    )


@pytest.mark.asyncio
async def test_tracks_without_preview_are_resolved_to_youtube():
    source = make_track(1, provider="spotify", title="Billie Jean", artist="Michael Jackson", preview=False)
    youtube = FakeYouTube(
        {
            "Billie Jean Michael Jackson official audio": [
                youtube_video("yt-karaoke", "Billie Jean karaoke", "Sing King"),
                youtube_video("yt-1", "Michael Jackson - Billie Jean (Official Audio)", "Michael Jackson"),
            ]
        }
    )

    async def spotify_popular(limit: int) -> list[Track]:
        return [source]

    resolver = make_resolver(MusicProviders(youtube_search=youtube.search, spotify_popular=spotify_popular))
    tracks = await resolver.resolve("spotify:popular", 1)

    assert len(tracks) == 1
    resolved = tracks[0]
    assert resolved.provider == "youtube"
    assert resolved.id == "yt-1"
    assert (resolved.title, resolved.artist) == ("Billie Jean", "Michael Jackson")
    assert resolved.source_url == "https://www.youtube.com/watch?v=yt-1"


@pytest.mark.asyncio
async def test_preview_tracks_are_kept_and_ads_are_dropped():
    chart = [
        make_track(1, title="Advertisement", artist="Deezer"),
        make_track(2, title="Hey Jude", artist="The Beatles"),
        make_track(3, title="Hotel California", artist="Eagles"),
    ]

    async def deezer_chart(limit: int) -> list[Track]:
        return chart

    youtube = FakeYouTube()
    resolver = make_resolver(MusicProviders(youtube_search=youtube.search, deezer_chart=deezer_chart))
    tracks = await resolver.resolve("deezer:chart", 5)

    assert sorted(track.title for track in tracks) == ["Hey Jude", "Hotel California"]
    assert youtube.queries == []


@pytest.mark.asyncio
async def test_failed_resolution_is_not_cached_but_hits_are():
    missing = make_track(1, provider="spotify", title="Obscure B-Side", artist="Nobody", preview=False)
    found = make_track(2, provider="spotify", title="Hey Jude", artist="The Beatles", preview=False)
    youtube = FakeYouTube(
        {"Hey Jude The Beatles official audio": [youtube_video("yt-jude", "Hey Jude", "The Beatles")]}
    )
    resolver = make_resolver(MusicProviders(youtube_search=youtube.search))

    assert await resolver.resolve_playback(missing) is None
    assert await resolver.resolve_playback(missing) is None
    missing_queries = [query for query, _ in youtube.queries if "Obscure" in query]
    assert len(missing_queries) == 4

    first = await resolver.resolve_playback(found)
    second = await resolver.resolve_playback(found)
    assert first == second
    assert first is not None and first.id == "yt-jude"
    jude_queries = [query for query, _ in youtube.queries if "Jude" in query]
    assert len(jude_queries) == 2
    assert resolver.stats()["playbackCacheSize"] == 1


@pytest.mark.asyncio
async def test_playback_cache_expires_after_ttl():
    clock = FakeClock()
    track = make_track(1, provider="spotify", title="Hey Jude", artist="The Beatles", preview=False)
    youtube = FakeYouTube(
        {"Hey Jude The Beatles official audio": [youtube_video("yt-jude", "Hey Jude", "The Beatles")]}
    )
    resolver = make_resolver(MusicProviders(youtube_search=youtube.search), clock)

    await resolver.resolve_playback(track)
    clock.advance(resolver.config.playback_cache_ttl_ms + 1)
    await resolver.resolve_playback(track)
    assert len([query for query, _ in youtube.queries if query.endswith("official audio")]) == 2


@pytest.mark.asyncio
async def test_youtube_like_tracks_pass_through():
    video = Track(
        provider="deezer",
        id="dQw4w9WgXcQ",
        title="Never Gonna Give You Up",
        artist="Rick Astley",
        preview_url="https://cdn.example.com/preview.mp3",
        source_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    )
    resolver = make_resolver(MusicProviders())
    resolved = await resolver.resolve_playback(video)
    assert resolved is not None
    assert resolved.provider == "youtube"
    assert resolved.preview_url is None


@pytest.mark.asyncio
async def test_empty_source_returns_no_tracks():
    resolver = make_resolver(MusicProviders())
    assert await resolver.resolve("deezer:playlist:123", 5) == []


@pytest.mark.asyncio
async def test_rate_limit_without_any_track_propagates():
    youtube = FakeYouTube()
    youtube.error = ProviderRateLimited("youtube", retry_after_ms=30_000)

    async def spotify_popular(limit: int) -> list[Track]:
        return [make_track(index, provider="spotify", preview=False) for index in range(1, 4)]

    resolver = make_resolver(MusicProviders(youtube_search=youtube.search, spotify_popular=spotify_popular))
    with pytest.raises(ProviderRateLimited) as excinfo:
        await resolver.resolve("spotify:popular", 3)
    assert excinfo.value.retry_after_ms == 30_000


@pytest.mark.asyncio
async def test_source_provider_failure_propagates():
    async def deezer_chart(limit: int) -> list[Track]:
        raise ProviderError("deezer", "HTTP 503", status=503)

    resolver = make_resolver(MusicProviders(deezer_chart=deezer_chart))
    with pytest.raises(ProviderError):
        await resolver.resolve("deezer:chart", 3)


@pytest.mark.asyncio
async def test_search_aggregates_providers_and_skips_a_failing_one():
    async def deezer_search(query: str, limit: int) -> list[Track]:
        return [
            make_track(1, title="Wonderwall", artist="Oasis"),
            make_track(2, title="Champagne Supernova", artist="Oasis"),
        ]

    async def broken_search(query: str, limit: int) -> list[Track]:
        raise ProviderError("other", "timeout")

    youtube = FakeYouTube({"oasis": [youtube_video("yt-live", "Live Forever", "Oasis")]})
    resolver = make_resolver(
        MusicProviders(
            search_providers=(("deezer", deezer_search), ("other", broken_search)),
            youtube_search=youtube.search,
        )
    )
    tracks = await resolver.resolve("oasis", 3)

    assert sorted(track.title for track in tracks) == ["Champagne Supernova", "Live Forever", "Wonderwall"]
    assert ("oasis", 3) in youtube.queries


@pytest.mark.asyncio
async def test_user_union_interleaves_and_dedupes():
    favourites = {
        "1": [make_track(1, title="Shared", artist="Band"), make_track(2)],
        "2": [make_track(3, title="Shared", artist="Band"), make_track(4)],
    }

    async def user_tracks(user_id: str, limit: int) -> list[Track]:
        return favourites[user_id]

    resolver = make_resolver(MusicProviders(deezer_user_tracks=user_tracks))
    tracks = await resolver.resolve("deezer:users:1,2", 10)

    assert len(tracks) == 3
    assert sorted(track.title for track in tracks) == ["Shared", "Song 2", "Song 4"]


class CountingYouTube:
    """YouTube search stub that records how many lookups overlap."""

    def __init__(self) -> None:
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, query: str, limit: int) -> list[Track]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        return []


def unplayable_tracks(count: int) -> list[Track]:
    return [make_track(index, provider="spotify", preview=False) for index in range(1, count + 1)]


@pytest.mark.asyncio
async def test_playback_lookups_never_exceed_resolve_concurrency():
    youtube = CountingYouTube()

    async def spotify_popular(limit: int) -> list[Track]:
        return unplayable_tracks(8)

    resolver = TrackPoolResolver(
        MusicProviders(youtube_search=youtube.search, spotify_popular=spotify_popular),
        ResolverConfig(resolve_concurrency=2),
        clock=FakeClock(),
        rng=random.Random(5),
    )
    assert await resolver.resolve("spotify:popular", 4) == []

    assert youtube.max_in_flight == 2
    assert resolver.stats()["resolveAttempts"] == 8
    assert youtube.calls == 16


@pytest.mark.asyncio
async def test_only_budgeted_candidates_are_resolved():
    youtube = CountingYouTube()

    async def spotify_popular(limit: int) -> list[Track]:
        return unplayable_tracks(20)

    resolver = TrackPoolResolver(
        MusicProviders(youtube_search=youtube.search, spotify_popular=spotify_popular),
        ResolverConfig(resolve_concurrency=4, resolve_budget_max=3),
        clock=FakeClock(),
        rng=random.Random(5),
    )
    assert await resolver.resolve("spotify:popular", 4) == []

    assert resolver.stats()["resolveAttempts"] == 3
    assert youtube.calls == 6


@pytest.mark.asyncio
async def test_short_search_pool_is_topped_up_from_youtube_queries():
    async def deezer_search(query: str, limit: int) -> list[Track]:
        return [make_track(1, title="Nightcall", artist="Kavinsky")]

    youtube = FakeYouTube(
        {
            "synthwave": [youtube_video("yt-1", "Turbo Killer", "Carpenter Brut")],
            "synthwave official audio": [
                youtube_video("yt-2", "Resonance", "Home"),
                youtube_video("yt-3", "Sunset", "The Midnight"),
            ],
        }
    )
    resolver = make_resolver(
        MusicProviders(search_providers=(("deezer", deezer_search),), youtube_search=youtube.search)
    )
    tracks = await resolver.resolve("synthwave", 3)

    assert youtube.queries == [("synthwave", 3), ("synthwave official audio", 3)]
    assert [track.title for track in tracks] == ["Nightcall", "Turbo Killer", "Resonance"]


@pytest.mark.asyncio
async def test_non_search_sources_are_not_topped_up():
    async def deezer_chart(limit: int) -> list[Track]:
        return [make_track(1, title="Nightcall", artist="Kavinsky")]

    youtube = FakeYouTube({"deezer:chart": [youtube_video("yt-1", "Turbo Killer", "Carpenter Brut")]})
    resolver = make_resolver(MusicProviders(youtube_search=youtube.search, deezer_chart=deezer_chart))
    tracks = await resolver.resolve("deezer:chart", 3)

    assert [track.title for track in tracks] == ["Nightcall"]
    assert youtube.queries == []
