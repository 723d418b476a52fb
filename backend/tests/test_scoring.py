from __future__ import annotations

import pytest

from songquiz.scoring import apply_score


def test_incorrect_answer_earns_nothing_and_resets_streak():
    result = apply_score(is_correct=False, response_ms=100, streak=5, base_score=1000)
    assert result.earned == 0
    assert result.next_streak == 0


def test_instant_first_correct_answer_earns_base_score():
    result = apply_score(is_correct=True, response_ms=0, streak=0, base_score=1000)
    assert result.earned == 1000
    assert result.next_streak == 1
    assert result.multiplier == 1.0


@pytest.mark.parametrize(
    ("streak", "multiplier"),
    [(0, 1.0), (1, 1.1), (2, 1.25), (3, 1.5), (9, 1.5)],
)
def test_streak_multiplier_is_capped(streak, multiplier):
    result = apply_score(is_correct=True, response_ms=0, streak=streak, base_score=1000)
    assert result.multiplier == multiplier
    assert result.earned == round(1000 * multiplier)


def test_speed_factor_has_a_floor():
    at_window = apply_score(is_correct=True, response_ms=20_000, streak=0, base_score=1000)
    past_window = apply_score(is_correct=True, response_ms=60_000, streak=0, base_score=1000)
    assert at_window.earned == 500
    assert past_window.earned == 500


def test_points_never_increase_with_latency():
    earned = [
        apply_score(is_correct=True, response_ms=ms, streak=2, base_score=1000).earned
        for ms in range(0, 25_001, 500)
    ]
    assert all(later <= earlier for earlier, later in zip(earned, earned[1:]))
    assert earned[0] > earned[-1] > 0
