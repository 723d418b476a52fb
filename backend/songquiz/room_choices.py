from __future__ import annotations

import random

from .music_types import Track
from .room_constants import CHOICE_COUNT, PLACEHOLDER_CHOICES
from .room_types import RoomSession
from .room_utils import track_choice_label


def correct_choice_for(track: Track) -> str:
    return track_choice_label(track.title, track.artist)


def _append_unique(options: list[str], seen: set[str], candidates: list[str], limit: int) -> None:
    for candidate in candidates:
        if len(options) >= limit:
            return
        key = candidate.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        options.append(candidate)


def build_round_choices(
    track_pool: list[Track],
    round_number: int,
    *,
    rng: random.Random | None = None,
) -> list[str]:
    """Return exactly ``CHOICE_COUNT`` distinct options for a multiple-choice round.

    Distractors come from tracks not yet played. Answers of earlier rounds are
    never offered; a short pool is padded with placeholder titles.
    """
    index = round_number - 1
    if index < 0 or index >= len(track_pool):
        return []
    shuffler = rng or random.Random()

    correct = correct_choice_for(track_pool[index])
    earlier_answers = {correct_choice_for(track).strip().lower() for track in track_pool[:index]}
    distractors = [correct_choice_for(track) for track in track_pool[index + 1 :]]
    shuffler.shuffle(distractors)

    options: list[str] = []
    seen: set[str] = set()
    _append_unique(options, seen, [correct], CHOICE_COUNT)
    seen.update(earlier_answers)
    _append_unique(options, seen, distractors, CHOICE_COUNT)
    _append_unique(options, seen, list(PLACEHOLDER_CHOICES), CHOICE_COUNT)
    shuffler.shuffle(options)
    return options


def choices_for_round(room: RoomSession, round_number: int, *, rng: random.Random | None = None) -> list[str]:
    cached = room.round_choices.get(round_number)
    if cached is not None:
        return cached
    choices = build_round_choices(room.track_pool, round_number, rng=rng)
    if choices:
        room.round_choices[round_number] = choices
    return choices
