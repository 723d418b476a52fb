from __future__ import annotations

import pytest

from conftest import FakeClock, StaticPoolBuilder, make_track
from songquiz.errors import ProviderError
from songquiz.track_cache import TrackCache


@pytest.mark.asyncio
async def test_fresh_entry_is_served_from_cache():
    builder = StaticPoolBuilder([make_track(index) for index in range(1, 6)])
    cache = TrackCache(builder, 60_000, clock=FakeClock())

    first = await cache.get_or_build("Classic Rock", 3)
    second = await cache.get_or_build("classic rock", 3)

    assert first == second
    assert len(builder.calls) == 1
    stats = cache.stats()
    assert (stats["cacheHits"], stats["cacheMisses"], stats["keyCount"]) == (1, 1, 1)


@pytest.mark.asyncio
async def test_expired_entry_is_rebuilt():
    clock = FakeClock()
    builder = StaticPoolBuilder([make_track(1)])
    cache = TrackCache(builder, 60_000, clock=clock)

    await cache.get_or_build("jazz", 1)
    clock.advance(60_000)
    await cache.get_or_build("jazz", 1)
    assert len(builder.calls) == 2


@pytest.mark.asyncio
async def test_pool_without_playable_tracks_is_not_stored():
    builder = StaticPoolBuilder([make_track(1, provider="spotify", preview=False)])
    cache = TrackCache(builder, 60_000, clock=FakeClock())

    tracks = await cache.get_or_build("silence", 1)
    assert len(tracks) == 1
    assert cache.stats()["keyCount"] == 0

    await cache.get_or_build("silence", 1)
    assert len(builder.calls) == 2


@pytest.mark.asyncio
async def test_stale_entry_is_served_when_rebuild_fails():
    clock = FakeClock()
    builder = StaticPoolBuilder([make_track(1), make_track(2)])
    cache = TrackCache(builder, 60_000, clock=clock)
    cached = await cache.get_or_build("disco", 2)

    clock.advance(120_000)
    builder.error = ProviderError("deezer", "HTTP 503", status=503)
    assert await cache.get_or_build("disco", 2) == cached


@pytest.mark.asyncio
async def test_rebuild_failure_without_entry_propagates():
    builder = StaticPoolBuilder()
    builder.error = ProviderError("deezer", "timeout")
    cache = TrackCache(builder, 60_000, clock=FakeClock())

    with pytest.raises(ProviderError):
        await cache.get_or_build("disco", 2)


@pytest.mark.asyncio
async def test_short_fresh_entry_triggers_rebuild_for_bigger_request():
    builder = StaticPoolBuilder([make_track(index) for index in range(1, 4)])
    cache = TrackCache(builder, 60_000, clock=FakeClock())

    await cache.get_or_build("funk", 2)
    await cache.get_or_build("funk", 3)
    assert builder.calls == [("funk", 2), ("funk", 3)]
