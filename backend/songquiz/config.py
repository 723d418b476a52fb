from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


class Settings:
    def __init__(self) -> None:
        self.redis_url = os.getenv("REDIS_URL", "").strip()
        self.redis_resolved_track_ttl_seconds = max(
            60,
            int(os.getenv("REDIS_RESOLVED_TRACK_TTL_SECONDS", str(24 * 60 * 60))),
        )
        self.api_port = int(os.getenv("API_PORT", "3001"))

        # Game
        self.max_rounds = max(1, min(50, int(os.getenv("MAX_ROUNDS", "8"))))
        self.countdown_ms = max(0, int(os.getenv("COUNTDOWN_MS", "3000")))
        self.loading_ms = max(0, int(os.getenv("LOADING_MS", "0")))
        self.round_ms = max(1000, int(os.getenv("ROUND_MS", "20000")))
        self.reveal_ms = max(0, int(os.getenv("REVEAL_MS", "5000")))
        self.leaderboard_ms = max(0, int(os.getenv("LEADERBOARD_MS", "4000")))
        self.base_score = max(1, int(os.getenv("BASE_SCORE", "1000")))
        self.leaderboard_top_n = max(1, int(os.getenv("LEADERBOARD_TOP_N", "10")))
        self.max_players = max(1, int(os.getenv("MAX_PLAYERS", "20")))

        # Track pool
        self.start_timeout_ms = max(1000, int(os.getenv("START_TIMEOUT_MS", "12000")))
        self.track_cache_ttl_ms = max(1000, int(os.getenv("TRACK_CACHE_TTL_MS", str(5 * 60_000))))
        self.resolve_concurrency = max(1, min(16, int(os.getenv("RESOLVE_CONCURRENCY", "4"))))
        self.resolve_budget_max = max(1, int(os.getenv("RESOLVE_BUDGET_MAX", "48")))
        self.top_up_extra_tracks = max(0, int(os.getenv("TOP_UP_EXTRA_TRACKS", "8")))

        # Providers
        self.provider_timeout_seconds = max(1.0, float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "4")))
        self.provider_retries = max(0, int(os.getenv("PROVIDER_RETRIES", "2")))
        self.deezer_enabled = _env_flag("DEEZER_ENABLED", True)
        self.youtube_api_key = os.getenv("YOUTUBE_API_KEY", "").strip()
        self.spotify_client_id = os.getenv("SPOTIFY_CLIENT_ID", "").strip()
        self.spotify_client_secret = os.getenv("SPOTIFY_CLIENT_SECRET", "").strip()
        self.spotify_market = os.getenv("SPOTIFY_MARKET", "US").strip() or "US"
        self.spotify_popular_playlist_id = os.getenv(
            "SPOTIFY_POPULAR_PLAYLIST_ID",
            "37i9dQZF1DXcBWIGoYBM5M",
        ).strip()


settings = Settings()
