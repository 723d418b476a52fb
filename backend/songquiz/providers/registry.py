from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..config import Settings
from ..music_types import ProviderSearchFn, Track
from .deezer import DeezerClient
from .spotify import SpotifyClient
from .youtube import YouTubeClient

PlaylistFetchFn = Callable[[str, int], Awaitable[list[Track]]]
ListFetchFn = Callable[[int], Awaitable[list[Track]]]


async def _no_search_results(query: str, limit: int) -> list[Track]:
    return []


async def _no_playlist_tracks(source_id: str, limit: int) -> list[Track]:
    return []


async def _no_list_tracks(limit: int) -> list[Track]:
    return []


@dataclass(frozen=True)
class MusicProviders:
    """Provider capabilities consumed by the track pool resolver.

    Every callable returns normalized ``Track`` values; request shaping,
    auth and retries live behind these functions.
    """

    search_providers: tuple[tuple[str, ProviderSearchFn], ...] = field(default_factory=tuple)
    youtube_search: ProviderSearchFn = _no_search_results
    spotify_playlist: PlaylistFetchFn = _no_playlist_tracks
    spotify_popular: ListFetchFn = _no_list_tracks
    deezer_playlist: PlaylistFetchFn = _no_playlist_tracks
    deezer_chart: ListFetchFn = _no_list_tracks
    deezer_user_tracks: PlaylistFetchFn = _no_playlist_tracks


def build_music_providers(config: Settings) -> MusicProviders:
    deezer = DeezerClient(config)
    spotify = SpotifyClient(config)
    youtube = YouTubeClient(config)
    return MusicProviders(
        search_providers=(("deezer", deezer.search), ("youtube", youtube.search)),
        youtube_search=youtube.search,
        spotify_playlist=spotify.playlist_tracks,
        spotify_popular=spotify.popular_tracks,
        deezer_playlist=deezer.playlist_tracks,
        deezer_chart=deezer.chart_tracks,
        deezer_user_tracks=deezer.user_favorite_tracks,
    )
