from __future__ import annotations

from .room_types import RoomVisibility

ROOM_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_MAX_ATTEMPTS = 64
CHOICE_COUNT = 4
DEFAULT_CATEGORY_QUERY = "popular hits"
PLAYER_NAME_MAX_LENGTH = 24
CATEGORY_QUERY_MAX_LENGTH = 200
PLACEHOLDER_CHOICES: tuple[str, ...] = (
    "Unknown Track - Unknown Artist",
    "Mystery Song - Various Artists",
    "Untitled - Anonymous",
    "Hidden Track - Studio Session",
)
ROOM_VISIBILITIES: tuple[RoomVisibility, RoomVisibility] = ("public", "private")
