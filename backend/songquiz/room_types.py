from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from .music_types import Track
from .round_manager import RoundManager

RoomVisibility = Literal["public", "private"]
RoundMode = Literal["mcq", "text"]
RoomStatus = Literal[
    "ok",
    "room_not_found",
    "player_not_found",
    "forbidden",
    "invalid_state",
    "invalid_input",
    "no_tracks_found",
    "rate_limited",
]


@dataclass
class Player:
    id: str
    display_name: str
    joined_at_ms: int
    user_id: str | None = None
    ready: bool = False
    score: int = 0
    streak: int = 0
    max_streak: int = 0
    correct_answers: int = 0
    total_response_ms: int = 0

    def reset_stats(self) -> None:
        self.score = 0
        self.streak = 0
        self.max_streak = 0
        self.correct_answers = 0
        self.total_response_ms = 0


@dataclass
class RoomSession:
    room_code: str
    manager: RoundManager
    created_at_ms: int
    visibility: RoomVisibility = "private"
    category_query: str = ""
    players: dict[str, Player] = field(default_factory=dict)
    host_player_id: str | None = None
    next_player_number: int = 1
    track_pool: list[Track] = field(default_factory=list)
    round_modes: dict[int, RoundMode] = field(default_factory=dict)
    round_choices: dict[int, list[str]] = field(default_factory=dict)
    latest_reveal: dict[str, Any] | None = None
