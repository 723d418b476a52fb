from __future__ import annotations

import random

import pytest

from songquiz.music_types import Track
from songquiz.room_store import GameConfig, RoomStore
from songquiz.track_cache import TrackCache


class FakeClock:
    def __init__(self, start_ms: int = 1_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, delta_ms: int) -> int:
        self.now += delta_ms
        return self.now


def make_track(
    index: int,
    *,
    provider: str = "deezer",
    title: str | None = None,
    artist: str | None = None,
    preview: bool = True,
) -> Track:
    return Track(
        provider=provider,
        id=f"{provider}-{index}",
        title=title or f"Song {index}",
        artist=artist or f"Artist {index}",
        duration_sec=180,
        preview_url=f"https://cdn.example.com/{provider}/{index}.mp3" if preview else None,
        source_url=f"https://www.{provider}.com/track/{index}",
    )


class StaticPoolBuilder:
    """Track pool builder returning a fixed pool, or raising a configured error."""

    def __init__(self, tracks: list[Track] | None = None) -> None:
        self.tracks = list(tracks or [])
        self.error: Exception | None = None
        self.calls: list[tuple[str, int]] = []

    async def __call__(self, category_query: str, size: int) -> list[Track]:
        self.calls.append((category_query, size))
        if self.error is not None:
            raise self.error
        return self.tracks[:size]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def pool_builder() -> StaticPoolBuilder:
    return StaticPoolBuilder(
        [
            make_track(1, title="Bohemian Rhapsody", artist="Queen"),
            make_track(2, title="Billie Jean", artist="Michael Jackson"),
            make_track(3, title="Smells Like Teen Spirit", artist="Nirvana"),
            make_track(4, title="Hey Jude", artist="The Beatles"),
            make_track(5, title="Hotel California", artist="Eagles"),
            make_track(6, title="Rolling in the Deep", artist="Adele"),
        ]
    )


@pytest.fixture()
def game_config() -> GameConfig:
    return GameConfig(
        max_rounds=4,
        countdown_ms=0,
        loading_ms=0,
        round_ms=20_000,
        reveal_ms=5_000,
        leaderboard_ms=4_000,
        base_score=1000,
        leaderboard_top_n=10,
        max_players=8,
        start_timeout_ms=2_000,
        top_up_extra_tracks=0,
    )


@pytest.fixture()
def track_cache(pool_builder: StaticPoolBuilder, clock: FakeClock) -> TrackCache:
    return TrackCache(pool_builder, 300_000, clock=clock)


@pytest.fixture()
def room_store(track_cache: TrackCache, game_config: GameConfig, clock: FakeClock) -> RoomStore:
    return RoomStore(track_cache, game_config, clock=clock, rng=random.Random(7))


def create_ready_room(store: RoomStore, names: tuple[str, ...] = ("Alice", "Bob")) -> tuple[str, list[str]]:
    code = store.create_room("public", "classic rock")["roomCode"]
    player_ids = [store.join_room(code, name)["playerId"] for name in names]
    for player_id in player_ids:
        assert store.set_player_ready(code, player_id, True)["status"] == "ok"
    return code, player_ids
