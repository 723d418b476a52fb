from __future__ import annotations

from urllib import error

import pytest

from songquiz.errors import ProviderError, ProviderRateLimited
from songquiz.providers import http
from songquiz.providers.deezer import _track_from_item as deezer_track
from songquiz.providers.youtube import _track_from_item as youtube_track


async def _no_sleep(delay: float) -> None:
    return None


def test_log_urls_hide_credentials():
    sanitized = http.sanitize_url_for_logs("https://www.googleapis.com/youtube/v3/search?q=queen&key=secret")
    assert "secret" not in sanitized
    assert "q=queen" in sanitized


def test_retry_after_header_parsing():
    assert http.parse_retry_after_ms("3") == 3_000
    assert http.parse_retry_after_ms(None) is None
    assert http.parse_retry_after_ms("soon") is None


@pytest.mark.asyncio
async def test_exhausted_429_raises_rate_limited(monkeypatch):
    calls = []

    def fake_request(url, **kwargs):
        calls.append(url)
        raise error.HTTPError(url, 429, "Too Many Requests", {"Retry-After": "2"}, None)

    monkeypatch.setattr(http, "_request_json", fake_request)
    monkeypatch.setattr(http.asyncio, "sleep", _no_sleep)

    with pytest.raises(ProviderRateLimited) as excinfo:
        await http.fetch_json("https://api.deezer.com/chart", provider="deezer", retries=1)
    assert excinfo.value.retry_after_ms == 2_000
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_status_returns_none(monkeypatch):
    def fake_request(url, **kwargs):
        raise error.HTTPError(url, 404, "Not Found", {}, None)

    monkeypatch.setattr(http, "_request_json", fake_request)
    assert await http.fetch_json("https://api.deezer.com/playlist/1", provider="deezer") is None


@pytest.mark.asyncio
async def test_network_failure_raises_provider_error(monkeypatch):
    def fake_request(url, **kwargs):
        raise error.URLError("connection refused")

    monkeypatch.setattr(http, "_request_json", fake_request)
    monkeypatch.setattr(http.asyncio, "sleep", _no_sleep)

    with pytest.raises(ProviderError):
        await http.fetch_json("https://api.deezer.com/chart", provider="deezer", retries=2)


def test_deezer_item_normalization():
    track = deezer_track(
        {
            "id": 3135556,
            "title": "Harder, Better, Faster, Stronger",
            "duration": 224,
            "preview": "https://cdns-preview.dzcdn.net/stream/abc.mp3",
            "artist": {"name": "Daft Punk"},
        }
    )
    assert track is not None
    assert (track.provider, track.id, track.artist) == ("deezer", "3135556", "Daft Punk")
    assert track.preview_url.endswith("abc.mp3")
    assert deezer_track({"id": 1, "title": "No artist"}) is None


def test_youtube_item_normalization():
    track = youtube_track(
        {
            "id": {"videoId": "fJ9rUzIMcZQ"},
            "snippet": {"title": "Queen &amp; David Bowie - Under Pressure", "channelTitle": "Queen - Topic"},
        }
    )
    assert track is not None
    assert track.title == "Queen & David Bowie - Under Pressure"
    assert track.artist == "Queen"
    assert track.source_url == "https://www.youtube.com/watch?v=fJ9rUzIMcZQ"
