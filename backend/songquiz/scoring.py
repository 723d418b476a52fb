from __future__ import annotations

from dataclasses import dataclass

STREAK_MULTIPLIERS: tuple[float, ...] = (1.0, 1.1, 1.25, 1.5)
SPEED_FACTOR_WINDOW_MS = 20_000
MIN_SPEED_FACTOR = 0.5


@dataclass(frozen=True)
class ScoreResult:
    earned: int
    next_streak: int
    multiplier: float


def apply_score(*, is_correct: bool, response_ms: int, streak: int, base_score: int) -> ScoreResult:
    """Points for one answer: base score scaled by streak multiplier and speed.

    The speed factor decays linearly from 1.0 at 0 ms to ``MIN_SPEED_FACTOR``
    and never goes below it, so a correct answer always earns points.
    """
    if not is_correct:
        return ScoreResult(earned=0, next_streak=0, multiplier=1.0)

    next_streak = max(0, int(streak)) + 1
    index = min(next_streak - 1, len(STREAK_MULTIPLIERS) - 1)
    multiplier = STREAK_MULTIPLIERS[index]
    safe_response_ms = max(0, int(response_ms))
    speed_factor = max(MIN_SPEED_FACTOR, 1 - safe_response_ms / SPEED_FACTOR_WINDOW_MS)
    earned = int(round(max(0, base_score) * multiplier * speed_factor))
    return ScoreResult(earned=earned, next_streak=next_streak, multiplier=multiplier)
