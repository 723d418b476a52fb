"""Per-room round state machine.

There is no timer: every read of a room first calls ``tick`` with the current
time, and ``tick`` replays every phase whose deadline has passed. Each new
deadline is chained from the previous one, so the resulting phase depends
only on elapsed time and not on how often ``tick`` was called.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

GamePhase = Literal[
    "waiting",
    "countdown",
    "loading",
    "playing",
    "reveal",
    "leaderboard",
    "results",
]

ActionRejection = Literal[
    "wrong_phase",
    "deadline_passed",
    "already_answered",
    "already_skipped",
    "already_ready",
]


@dataclass(frozen=True)
class PhaseDurations:
    round_ms: int
    reveal_ms: int
    leaderboard_ms: int
    loading_ms: int = 0


@dataclass(frozen=True)
class SubmittedAnswer:
    value: str
    submitted_at_ms: int


@dataclass(frozen=True)
class ClosedRound:
    round: int
    started_at_ms: int
    closed_at_ms: int
    answers: dict[str, SubmittedAnswer]
    skipped_player_ids: frozenset[str]


@dataclass
class TickResult:
    closed_rounds: list[ClosedRound] = field(default_factory=list)
    transitions: int = 0


@dataclass(frozen=True)
class ActionResult:
    accepted: bool
    reason: ActionRejection | None = None


_ACCEPTED = ActionResult(accepted=True)


class RoundManager:
    def __init__(self, room_code: str) -> None:
        self.room_code = room_code
        self.phase: GamePhase = "waiting"
        self.current_round = 0
        self.total_rounds = 0
        self.deadline_ms: int | None = None
        self.round_started_at_ms: int | None = None
        self.answers: dict[str, SubmittedAnswer] = {}
        self.drafts: dict[str, str] = {}
        self.guess_skips: set[str] = set()
        self.reveal_skips: set[str] = set()
        self.media_ready: set[str] = set()

    def _clear_round_state(self) -> None:
        self.answers = {}
        self.drafts = {}
        self.guess_skips = set()
        self.reveal_skips = set()
        self.media_ready = set()

    def start(self, now_ms: int, countdown_ms: int, total_rounds: int) -> bool:
        if self.phase != "waiting":
            return False
        self._clear_round_state()
        self.current_round = 0
        self.total_rounds = max(0, int(total_rounds))
        self.round_started_at_ms = None
        self.phase = "countdown"
        self.deadline_ms = int(now_ms) + max(0, int(countdown_ms))
        return True

    def reset_to_waiting(self) -> None:
        self._clear_round_state()
        self.phase = "waiting"
        self.current_round = 0
        self.total_rounds = 0
        self.deadline_ms = None
        self.round_started_at_ms = None

    def _finish(self) -> None:
        self.phase = "results"
        self.deadline_ms = None

    def _begin_round(self, at_ms: int, durations: PhaseDurations) -> None:
        if self.current_round >= self.total_rounds:
            self._finish()
            return
        self.current_round += 1
        self._clear_round_state()
        if durations.loading_ms > 0:
            self.phase = "loading"
            self.round_started_at_ms = None
            self.deadline_ms = at_ms + durations.loading_ms
            return
        self._begin_playing(at_ms, durations)

    def _begin_playing(self, at_ms: int, durations: PhaseDurations) -> None:
        self.phase = "playing"
        self.round_started_at_ms = at_ms
        self.deadline_ms = at_ms + max(0, durations.round_ms)

    def _close_round(self, at_ms: int) -> ClosedRound:
        merged = dict(self.answers)
        for player_id, draft in self.drafts.items():
            if player_id in merged or player_id in self.guess_skips:
                continue
            if not draft.strip():
                continue
            merged[player_id] = SubmittedAnswer(value=draft, submitted_at_ms=at_ms)
        self.answers = merged
        self.drafts = {}
        return ClosedRound(
            round=self.current_round,
            started_at_ms=self.round_started_at_ms if self.round_started_at_ms is not None else at_ms,
            closed_at_ms=at_ms,
            answers=dict(merged),
            skipped_player_ids=frozenset(self.guess_skips),
        )

    def tick(self, now_ms: int, durations: PhaseDurations) -> TickResult:
        result = TickResult()
        while self.deadline_ms is not None and now_ms >= self.deadline_ms:
            expired_at = self.deadline_ms
            result.transitions += 1
            if self.phase == "countdown":
                self._begin_round(expired_at, durations)
            elif self.phase == "loading":
                self._begin_playing(expired_at, durations)
            elif self.phase == "playing":
                result.closed_rounds.append(self._close_round(expired_at))
                self.phase = "reveal"
                self.deadline_ms = expired_at + max(0, durations.reveal_ms)
            elif self.phase == "reveal":
                self.phase = "leaderboard"
                self.deadline_ms = expired_at + max(0, durations.leaderboard_ms)
            elif self.phase == "leaderboard":
                self._begin_round(expired_at, durations)
            else:
                self.deadline_ms = None
        return result

    def expire_current_phase(self, now_ms: int) -> bool:
        if self.deadline_ms is None or self.phase in ("waiting", "results"):
            return False
        self.deadline_ms = min(self.deadline_ms, int(now_ms))
        return True

    def submit_answer(self, player_id: str, value: str, now_ms: int) -> ActionResult:
        if self.phase != "playing" or self.deadline_ms is None:
            return ActionResult(accepted=False, reason="wrong_phase")
        if now_ms >= self.deadline_ms:
            return ActionResult(accepted=False, reason="deadline_passed")
        if player_id in self.answers:
            return ActionResult(accepted=False, reason="already_answered")
        if player_id in self.guess_skips:
            return ActionResult(accepted=False, reason="already_skipped")
        self.answers[player_id] = SubmittedAnswer(value=value, submitted_at_ms=int(now_ms))
        self.drafts.pop(player_id, None)
        return _ACCEPTED

    def set_draft_answer(self, player_id: str, value: str, now_ms: int) -> ActionResult:
        if self.phase != "playing" or self.deadline_ms is None:
            return ActionResult(accepted=False, reason="wrong_phase")
        if now_ms >= self.deadline_ms:
            return ActionResult(accepted=False, reason="deadline_passed")
        if player_id in self.answers:
            return ActionResult(accepted=False, reason="already_answered")
        if player_id in self.guess_skips:
            return ActionResult(accepted=False, reason="already_skipped")
        if value.strip():
            self.drafts[player_id] = value
        else:
            self.drafts.pop(player_id, None)
        return _ACCEPTED

    def skip_guess_for_player(self, player_id: str) -> ActionResult:
        if self.phase != "playing":
            return ActionResult(accepted=False, reason="wrong_phase")
        if player_id in self.answers:
            return ActionResult(accepted=False, reason="already_answered")
        if player_id in self.guess_skips:
            return ActionResult(accepted=False, reason="already_skipped")
        self.guess_skips.add(player_id)
        self.drafts.pop(player_id, None)
        return _ACCEPTED

    def skip_reveal_for_player(self, player_id: str) -> ActionResult:
        if self.phase != "reveal":
            return ActionResult(accepted=False, reason="wrong_phase")
        if player_id in self.reveal_skips:
            return ActionResult(accepted=False, reason="already_skipped")
        self.reveal_skips.add(player_id)
        return _ACCEPTED

    def mark_media_ready(self, player_id: str) -> ActionResult:
        if self.phase not in ("loading", "playing"):
            return ActionResult(accepted=False, reason="wrong_phase")
        if player_id in self.media_ready:
            return ActionResult(accepted=False, reason="already_ready")
        self.media_ready.add(player_id)
        return _ACCEPTED

    def has_finished_guessing(self, player_id: str) -> bool:
        return player_id in self.answers or player_id in self.guess_skips

    def all_finished_guessing(self, player_ids: Iterable[str]) -> bool:
        ids = list(player_ids)
        return bool(ids) and all(self.has_finished_guessing(player_id) for player_id in ids)

    def all_skipped_reveal(self, player_ids: Iterable[str]) -> bool:
        ids = list(player_ids)
        return bool(ids) and all(player_id in self.reveal_skips for player_id in ids)

    def all_media_ready(self, player_ids: Iterable[str]) -> bool:
        ids = list(player_ids)
        return bool(ids) and all(player_id in self.media_ready for player_id in ids)

    def remove_player(self, player_id: str) -> None:
        self.answers.pop(player_id, None)
        self.drafts.pop(player_id, None)
        self.guess_skips.discard(player_id)
        self.reveal_skips.discard(player_id)
        self.media_ready.discard(player_id)

    def remaining_ms(self, now_ms: int) -> int | None:
        if self.deadline_ms is None:
            return None
        return max(0, self.deadline_ms - int(now_ms))
