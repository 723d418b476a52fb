from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from .music_types import Track

logger = logging.getLogger(__name__)


def _resolved_track_key(signature: str) -> str:
    digest = hashlib.sha256(signature.encode("utf-8")).hexdigest()[:40]
    return f"sq:resolved-track:{digest}"


def _track_from_payload(payload: Any) -> Track | None:
    if not isinstance(payload, dict):
        return None
    provider = payload.get("provider")
    track_id = str(payload.get("id") or "").strip()
    if provider not in ("spotify", "deezer", "youtube") or not track_id:
        return None
    duration = payload.get("durationSec")
    return Track(
        provider=provider,
        id=track_id,
        title=str(payload.get("title") or ""),
        artist=str(payload.get("artist") or ""),
        duration_sec=int(duration) if isinstance(duration, int) else None,
        preview_url=payload.get("previewUrl") or None,
        source_url=payload.get("sourceUrl") or None,
        audio_url=payload.get("audioUrl") or None,
    )


class ResolvedTrackStore:
    """Shared cache of playback resolutions keyed by ``title::artist``.

    Disabled (every lookup misses) when no redis URL is configured or the
    server is unreachable at startup.
    """

    def __init__(self, redis_url: str, ttl_seconds: int) -> None:
        self._redis_url = redis_url
        self._ttl_seconds = max(60, int(ttl_seconds))
        self._redis: Redis | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._redis_url)

    async def connect(self) -> bool:
        if self._redis is not None:
            return True
        if not self._redis_url:
            logger.info("Redis URL is not configured, resolved track cache disabled")
            return False

        client = redis_from_url(self._redis_url, encoding="utf-8", decode_responses=True)
        try:
            await client.ping()
        except (RedisError, OSError):
            logger.exception("Failed to connect to Redis %s", self._redis_url)
            await client.aclose()
            return False

        self._redis = client
        logger.info("Redis resolved track cache connected")
        return True

    async def close(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
        finally:
            self._redis = None

    async def ping(self) -> bool:
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except (RedisError, OSError):
            logger.exception("Redis ping failed")
            return False

    async def get(self, signature: str) -> Track | None:
        if self._redis is None:
            return None
        key = _resolved_track_key(signature)
        try:
            raw = await self._redis.get(key)
        except (RedisError, OSError):
            logger.exception("Redis get failed for key %s", key)
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            return None
        return _track_from_payload(payload)

    async def set(self, signature: str, track: Track) -> None:
        if self._redis is None:
            return
        key = _resolved_track_key(signature)
        try:
            await self._redis.set(
                key,
                json.dumps(track.to_payload(), ensure_ascii=False),
                ex=self._ttl_seconds,
            )
        except (RedisError, OSError):
            logger.exception("Redis set failed for key %s", key)
