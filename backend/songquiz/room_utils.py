from __future__ import annotations

import random
import re
import time
from typing import Any, cast

from .room_constants import (
    CATEGORY_QUERY_MAX_LENGTH,
    PLAYER_NAME_MAX_LENGTH,
    ROOM_CODE_CHARS,
    ROOM_CODE_LENGTH,
    ROOM_VISIBILITIES,
)
from .room_types import RoomVisibility, RoundMode


def now_ms() -> int:
    return int(time.time() * 1000)


def random_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(random.choice(ROOM_CODE_CHARS) for _ in range(max(4, length)))


def sanitize_room_code(raw: str | None) -> str:
    value = (raw or "").upper()
    filtered = "".join(ch for ch in value if ch.isalnum())
    return filtered[:8]


def sanitize_player_name(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value:
        return ""
    return re.sub(r"\s+", " ", value)[:PLAYER_NAME_MAX_LENGTH].strip()


def sanitize_category_query(raw: Any) -> str:
    return re.sub(r"\s+", " ", str(raw or "")).strip()[:CATEGORY_QUERY_MAX_LENGTH]


def normalize_visibility(value: Any) -> RoomVisibility:
    normalized = str(value or "").strip().lower()
    if normalized in ROOM_VISIBILITIES:
        return cast(RoomVisibility, normalized)
    return "private"


def round_mode_for(round_number: int) -> RoundMode:
    return "mcq" if round_number % 2 == 1 else "text"


def track_choice_label(title: str, artist: str) -> str:
    return f"{title} - {artist}"
