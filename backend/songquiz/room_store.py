from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable

from .answer_matcher import is_choice_answer_correct, is_track_answer_correct
from .config import Settings
from .errors import ProviderError, ProviderRateLimited
from .music_types import Track, dedupe_tracks, is_track_playable, track_signature
from .room_choices import choices_for_round, correct_choice_for
from .room_constants import DEFAULT_CATEGORY_QUERY, ROOM_CODE_MAX_ATTEMPTS
from .room_results import build_results_payload
from .room_state_builders import build_room_state
from .room_types import Player, RoomSession, RoomStatus, RoomVisibility, RoundMode
from .room_utils import (
    normalize_visibility,
    now_ms,
    random_room_code,
    round_mode_for,
    sanitize_category_query,
    sanitize_player_name,
    sanitize_room_code,
)
from .round_manager import ActionResult, ClosedRound, PhaseDurations, RoundManager
from .scoring import apply_score
from .track_cache import TrackCache

logger = logging.getLogger(__name__)

# Phases a player may leave in and that the host may force past.
LEAVABLE_PHASES = frozenset({"waiting", "results"})
SKIPPABLE_PHASES = frozenset({"countdown", "loading", "playing", "reveal", "leaderboard"})


@dataclass(frozen=True)
class GameConfig:
    max_rounds: int = 8
    countdown_ms: int = 3000
    loading_ms: int = 0
    round_ms: int = 20000
    reveal_ms: int = 5000
    leaderboard_ms: int = 4000
    base_score: int = 1000
    leaderboard_top_n: int = 10
    max_players: int = 20
    start_timeout_ms: int = 12000
    top_up_extra_tracks: int = 8

    @classmethod
    def from_settings(cls, config: Settings) -> "GameConfig":
        return cls(
            max_rounds=config.max_rounds,
            countdown_ms=config.countdown_ms,
            loading_ms=config.loading_ms,
            round_ms=config.round_ms,
            reveal_ms=config.reveal_ms,
            leaderboard_ms=config.leaderboard_ms,
            base_score=config.base_score,
            leaderboard_top_n=config.leaderboard_top_n,
            max_players=config.max_players,
            start_timeout_ms=config.start_timeout_ms,
            top_up_extra_tracks=config.top_up_extra_tracks,
        )

    @property
    def durations(self) -> PhaseDurations:
        return PhaseDurations(
            round_ms=self.round_ms,
            reveal_ms=self.reveal_ms,
            leaderboard_ms=self.leaderboard_ms,
            loading_ms=self.loading_ms,
        )


def _ok(**payload: Any) -> dict[str, Any]:
    return {"status": "ok", **payload}


def _fail(status: RoomStatus, error: str, **payload: Any) -> dict[str, Any]:
    return {"status": status, "error": error, **payload}


def _rejected(result: ActionResult) -> dict[str, Any]:
    return _fail("invalid_state", result.reason or "rejected", accepted=False)


class RoomStore:
    """In-memory rooms plus the orchestration around their round machines.

    Every public method is synchronous between awaits, so room mutations never
    interleave. Phase changes only happen through ``RoundManager.tick``,
    which each operation replays before reading or mutating a room.
    """

    def __init__(
        self,
        track_cache: TrackCache,
        config: GameConfig | None = None,
        *,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._track_cache = track_cache
        self._config = config or GameConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._rooms: dict[str, RoomSession] = {}
        self._preload_jobs: dict[str, asyncio.Task[None]] = {}
        self._starting: set[str] = set()

    @property
    def config(self) -> GameConfig:
        return self._config

    # Internals

    def _room(self, code: str) -> RoomSession | None:
        return self._rooms.get(sanitize_room_code(code))

    def _tick(self, room: RoomSession) -> int:
        now = self._clock()
        result = room.manager.tick(now, self._config.durations)
        for closed in result.closed_rounds:
            self._settle_round(room, closed)
        return now

    def _ensure_host(self, room: RoomSession) -> None:
        if room.host_player_id in room.players:
            return
        previous = room.host_player_id
        room.host_player_id = next(iter(room.players), None)
        if previous and room.host_player_id:
            logger.info("room.host_changed room=%s host=%s", room.room_code, room.host_player_id)

    def _reset_ready(self, room: RoomSession) -> None:
        for player in room.players.values():
            player.ready = False

    def _round_mode(self, room: RoomSession, round_number: int) -> RoundMode:
        mode = room.round_modes.get(round_number)
        if mode is None:
            mode = round_mode_for(round_number)
            room.round_modes[round_number] = mode
        return mode

    def _current_choices(self, room: RoomSession, mode: RoundMode | None) -> list[str]:
        round_number = room.manager.current_round
        if mode != "mcq" or round_number <= 0:
            return []
        return choices_for_round(room, round_number, rng=self._rng)

    def _settle_round(self, room: RoomSession, closed: ClosedRound) -> None:
        index = closed.round - 1
        if index < 0 or index >= len(room.track_pool):
            logger.warning("room.settle_missing_track room=%s round=%s", room.room_code, closed.round)
            return
        track = room.track_pool[index]
        mode = self._round_mode(room, closed.round)
        correct_choice = correct_choice_for(track)
        if mode == "mcq":
            # Make sure the presented set exists even if nobody polled during the round.
            choices_for_round(room, closed.round, rng=self._rng)

        outcomes: list[dict[str, Any]] = []
        correct_count = 0
        for player in room.players.values():
            submitted = closed.answers.get(player.id)
            if submitted is None:
                is_correct = False
            elif mode == "mcq":
                is_correct = is_choice_answer_correct(submitted.value, correct_choice)
            else:
                is_correct = is_track_answer_correct(submitted.value, track.title, track.artist)

            response_ms = max(0, submitted.submitted_at_ms - closed.started_at_ms) if submitted and is_correct else 0
            score = apply_score(
                is_correct=is_correct,
                response_ms=response_ms,
                streak=player.streak,
                base_score=self._config.base_score,
            )
            player.score += score.earned
            player.streak = score.next_streak
            player.max_streak = max(player.max_streak, player.streak)
            if is_correct:
                correct_count += 1
                player.correct_answers += 1
                player.total_response_ms += response_ms

            outcomes.append(
                {
                    "playerId": player.id,
                    "displayName": player.display_name,
                    "answer": submitted.value if submitted else None,
                    "skipped": player.id in closed.skipped_player_ids,
                    "isCorrect": is_correct,
                    "responseMs": response_ms,
                    "earned": score.earned,
                    "multiplier": score.multiplier,
                    "streak": player.streak,
                    "score": player.score,
                }
            )

        room.latest_reveal = {
            "round": closed.round,
            "mode": mode,
            "trackId": track.id,
            "provider": track.provider,
            "title": track.title,
            "artist": track.artist,
            "acceptedAnswer": correct_choice,
            "media": {
                "previewUrl": track.preview_url,
                "sourceUrl": track.source_url,
                "audioUrl": track.audio_url,
            },
            "outcomes": outcomes,
        }
        logger.info(
            "room.round_settled room=%s round=%s mode=%s correct=%s players=%s",
            room.room_code,
            closed.round,
            mode,
            correct_count,
            len(room.players),
        )

    def _advance_if_everyone_done(self, room: RoomSession, now: int) -> None:
        manager = room.manager
        player_ids = list(room.players)
        done = (
            (manager.phase == "playing" and manager.all_finished_guessing(player_ids))
            or (manager.phase == "reveal" and manager.all_skipped_reveal(player_ids))
            or (manager.phase == "loading" and manager.all_media_ready(player_ids))
        )
        if done and manager.expire_current_phase(now):
            self._tick(room)

    def _lookup(self, code: str, player_id: str | None = None) -> tuple[RoomSession | None, dict[str, Any] | None]:
        room = self._room(code)
        if room is None:
            return None, _fail("room_not_found", "room_not_found")
        self._tick(room)
        if player_id is not None and player_id not in room.players:
            return room, _fail("player_not_found", "player_not_found")
        return room, None

    def _cancel_preload(self, code: str) -> None:
        task = self._preload_jobs.pop(code, None)
        if task is not None and not task.done():
            task.cancel()

    def _delete_room(self, room: RoomSession) -> None:
        self._rooms.pop(room.room_code, None)
        self._cancel_preload(room.room_code)
        self._starting.discard(room.room_code)
        logger.info("room.deleted room=%s", room.room_code)

    # Lobby

    def create_room(self, visibility: RoomVisibility | str = "private", category_query: str = "") -> dict[str, Any]:
        room_code = random_room_code()
        attempts = 1
        while room_code in self._rooms:
            if attempts >= ROOM_CODE_MAX_ATTEMPTS:
                raise RuntimeError("Unable to allocate a free room code")
            room_code = random_room_code()
            attempts += 1

        room = RoomSession(
            room_code=room_code,
            manager=RoundManager(room_code),
            created_at_ms=self._clock(),
            visibility=normalize_visibility(visibility),
            category_query=sanitize_category_query(category_query) or DEFAULT_CATEGORY_QUERY,
        )
        self._rooms[room_code] = room
        logger.info("room.created room=%s visibility=%s", room_code, room.visibility)
        return _ok(roomCode=room_code, visibility=room.visibility, categoryQuery=room.category_query)

    def _add_player(self, room: RoomSession, display_name: str, user_id: str | None) -> Player:
        player_id = f"p{room.next_player_number}"
        room.next_player_number += 1
        player = Player(id=player_id, display_name=display_name, joined_at_ms=self._clock(), user_id=user_id)
        room.players[player_id] = player
        self._reset_ready(room)
        self._ensure_host(room)
        logger.info("room.player_joined room=%s player=%s count=%s", room.room_code, player_id, len(room.players))
        return player

    def _join_checks(self, room: RoomSession, display_name: str) -> dict[str, Any] | None:
        if not display_name:
            return _fail("invalid_input", "display_name_required")
        if room.manager.phase == "results":
            return _fail("invalid_state", "game_finished")
        if len(room.players) >= self._config.max_players:
            return _fail("invalid_state", "room_full")
        return None

    def _joined(self, room: RoomSession, player: Player, *, rejoined: bool = False) -> dict[str, Any]:
        return _ok(
            roomCode=room.room_code,
            playerId=player.id,
            playerCount=len(room.players),
            isHost=player.id == room.host_player_id,
            rejoined=rejoined,
        )

    def join_room(self, code: str, display_name: str) -> dict[str, Any]:
        room, error = self._lookup(code)
        if error is not None:
            return error
        name = sanitize_player_name(display_name)
        error = self._join_checks(room, name)
        if error is not None:
            return error
        return self._joined(room, self._add_player(room, name, None))

    def join_room_as_user(self, code: str, user_id: str, display_name: str) -> dict[str, Any]:
        room, error = self._lookup(code)
        if error is not None:
            return error
        normalized_user_id = str(user_id or "").strip()
        if not normalized_user_id:
            return _fail("invalid_input", "user_id_required")

        existing = next((player for player in room.players.values() if player.user_id == normalized_user_id), None)
        if existing is not None:
            name = sanitize_player_name(display_name)
            if name:
                existing.display_name = name
            return self._joined(room, existing, rejoined=True)

        name = sanitize_player_name(display_name)
        error = self._join_checks(room, name)
        if error is not None:
            return error
        return self._joined(room, self._add_player(room, name, normalized_user_id))

    def set_room_source(self, code: str, player_id: str, category_query: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if player_id != room.host_player_id:
            return _fail("forbidden", "not_host")
        if room.manager.phase != "waiting":
            return _fail("invalid_state", "not_waiting")
        query = sanitize_category_query(category_query)
        if not query:
            return _fail("invalid_input", "category_query_required")

        room.category_query = query
        room.track_pool = []
        room.round_modes = {}
        room.round_choices = {}
        self._cancel_preload(room.room_code)
        logger.info("room.source_changed room=%s query=%r", room.room_code, query)
        return _ok(roomCode=room.room_code, categoryQuery=query)

    def set_player_ready(self, code: str, player_id: str, ready: bool) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if room.manager.phase != "waiting":
            return _fail("invalid_state", "not_waiting")
        room.players[player_id].ready = bool(ready)
        return _ok(
            roomCode=room.room_code,
            playerId=player_id,
            ready=room.players[player_id].ready,
            allReady=all(player.ready for player in room.players.values()),
        )

    def kick_player(self, code: str, host_id: str, target_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, host_id)
        if error is not None:
            return error
        if host_id != room.host_player_id:
            return _fail("forbidden", "not_host")
        if room.manager.phase != "waiting":
            return _fail("invalid_state", "not_waiting")
        if target_id == host_id:
            return _fail("invalid_input", "cannot_kick_self")
        if target_id not in room.players:
            return _fail("player_not_found", "player_not_found")

        del room.players[target_id]
        room.manager.remove_player(target_id)
        logger.info("room.player_kicked room=%s player=%s", room.room_code, target_id)
        return _ok(roomCode=room.room_code, playerId=target_id, playerCount=len(room.players))

    def remove_player(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if room.manager.phase not in LEAVABLE_PHASES:
            return _fail("invalid_state", "game_in_progress")

        del room.players[player_id]
        room.manager.remove_player(player_id)
        logger.info("room.player_left room=%s player=%s", room.room_code, player_id)
        if not room.players:
            self._delete_room(room)
            return _ok(roomCode=room.room_code, playerId=player_id, playerCount=0, roomDeleted=True)

        self._ensure_host(room)
        return _ok(
            roomCode=room.room_code,
            playerId=player_id,
            playerCount=len(room.players),
            hostPlayerId=room.host_player_id,
            roomDeleted=False,
        )

    # Game flow

    async def start_game(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if player_id != room.host_player_id:
            return _fail("forbidden", "not_host")
        if room.manager.phase != "waiting":
            return _fail("invalid_state", "not_waiting")
        if not room.players:
            return _fail("invalid_state", "no_players")
        if not room.category_query.strip():
            return _fail("invalid_input", "category_query_required")
        if not all(player.ready for player in room.players.values()):
            return _fail("invalid_state", "players_not_ready")
        if room.room_code in self._starting:
            return _fail("invalid_state", "start_in_progress")

        room_code = room.room_code
        category_query = room.category_query
        pool_size = self._config.max_rounds
        self._starting.add(room_code)
        try:
            tracks = await asyncio.wait_for(
                self._track_cache.get_or_build(category_query, pool_size),
                timeout=self._config.start_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning("room.start_failed room=%s reason=timeout query=%r", room_code, category_query)
            return _fail("no_tracks_found", "timeout")
        except ProviderRateLimited as exc:
            logger.warning("room.start_failed room=%s reason=rate_limited provider=%s", room_code, exc.provider)
            return _fail("rate_limited", "rate_limited", retryAfterMs=exc.retry_after_ms)
        except ProviderError as exc:
            logger.warning("room.start_failed room=%s reason=provider_error error=%s", room_code, exc)
            return _fail("no_tracks_found", "provider_unavailable")
        finally:
            self._starting.discard(room_code)

        # The room may have changed while the pool was resolving.
        room = self._rooms.get(room_code)
        if room is None:
            return _fail("room_not_found", "room_not_found")
        if room.manager.phase != "waiting" or room.category_query != category_query:
            return _fail("invalid_state", "room_changed")
        if player_id not in room.players:
            return _fail("player_not_found", "player_not_found")

        pool = [track for track in dedupe_tracks(tracks) if is_track_playable(track)][:pool_size]
        if not pool:
            logger.warning("room.start_failed room=%s reason=empty_pool query=%r", room_code, category_query)
            return _fail("no_tracks_found", "no_playable_tracks")

        total_rounds = min(self._config.max_rounds, len(pool))
        room.track_pool = pool
        room.round_modes = {number: round_mode_for(number) for number in range(1, total_rounds + 1)}
        room.round_choices = {}
        room.latest_reveal = None
        for player in room.players.values():
            player.reset_stats()
        room.manager.start(self._clock(), self._config.countdown_ms, total_rounds)
        self._tick(room)
        self._schedule_top_up(room)

        logger.info(
            "room.started room=%s rounds=%s pool=%s query=%r",
            room_code,
            total_rounds,
            len(pool),
            category_query,
        )
        return _ok(
            roomCode=room_code,
            phase=room.manager.phase,
            totalRounds=total_rounds,
            poolSize=len(pool),
            categoryQuery=category_query,
        )

    def _schedule_top_up(self, room: RoomSession) -> asyncio.Task[None] | None:
        existing = self._preload_jobs.get(room.room_code)
        if existing is not None and not existing.done():
            return existing
        target = self._config.max_rounds + self._config.top_up_extra_tracks
        if self._config.top_up_extra_tracks <= 0 or len(room.track_pool) >= target:
            return None

        task = asyncio.create_task(self._top_up_pool(room.room_code, room.category_query, target))
        self._preload_jobs[room.room_code] = task
        task.add_done_callback(lambda done, code=room.room_code: self._on_top_up_done(code, done))
        return task

    async def _top_up_pool(self, room_code: str, category_query: str, target: int) -> None:
        try:
            tracks = await self._track_cache.get_or_build(category_query, target)
        except ProviderError as exc:
            logger.warning("room.top_up_failed room=%s error=%s", room_code, exc)
            return

        room = self._rooms.get(room_code)
        if room is None or room.category_query != category_query or room.manager.phase == "waiting":
            return

        known = {track_signature(track) for track in room.track_pool}
        added: list[Track] = []
        for track in tracks:
            signature = track_signature(track)
            if signature in known or not is_track_playable(track):
                continue
            known.add(signature)
            added.append(track)
        room.track_pool.extend(added)

        manager = room.manager
        if manager.phase != "results":
            manager.total_rounds = max(manager.total_rounds, min(self._config.max_rounds, len(room.track_pool)))
        logger.info("room.top_up room=%s added=%s pool=%s", room_code, len(added), len(room.track_pool))

    def _on_top_up_done(self, room_code: str, task: asyncio.Task[None]) -> None:
        if self._preload_jobs.get(room_code) is task:
            del self._preload_jobs[room_code]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("room.top_up_crashed room=%s", room_code, exc_info=exc)

    def preload_job(self, code: str) -> asyncio.Task[None] | None:
        return self._preload_jobs.get(sanitize_room_code(code))

    def submit_answer(self, code: str, player_id: str, answer: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        value = str(answer or "").strip()
        if not value:
            return _fail("invalid_input", "answer_required")
        now = self._clock()
        result = room.manager.submit_answer(player_id, value, now)
        if not result.accepted:
            return _rejected(result)
        self._advance_if_everyone_done(room, now)
        return _ok(roomCode=room.room_code, accepted=True)

    def set_draft_answer(self, code: str, player_id: str, draft: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        result = room.manager.set_draft_answer(player_id, str(draft or ""), self._clock())
        if not result.accepted:
            return _rejected(result)
        return _ok(roomCode=room.room_code, accepted=True)

    def skip_guess(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        result = room.manager.skip_guess_for_player(player_id)
        if not result.accepted:
            return _rejected(result)
        self._advance_if_everyone_done(room, self._clock())
        return _ok(roomCode=room.room_code, accepted=True)

    def skip_reveal(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        result = room.manager.skip_reveal_for_player(player_id)
        if not result.accepted:
            return _rejected(result)
        self._advance_if_everyone_done(room, self._clock())
        return _ok(roomCode=room.room_code, accepted=True)

    def mark_media_ready(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        result = room.manager.mark_media_ready(player_id)
        if not result.accepted:
            return _rejected(result)
        self._advance_if_everyone_done(room, self._clock())
        return _ok(roomCode=room.room_code, accepted=True)

    def skip_current_round(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if player_id != room.host_player_id:
            return _fail("forbidden", "not_host")
        if room.manager.phase not in SKIPPABLE_PHASES:
            return _fail("invalid_state", "nothing_to_skip")
        previous_phase = room.manager.phase
        room.manager.expire_current_phase(self._clock())
        self._tick(room)
        logger.info(
            "room.phase_skipped room=%s from=%s to=%s",
            room.room_code,
            previous_phase,
            room.manager.phase,
        )
        return _ok(roomCode=room.room_code, phase=room.manager.phase, round=room.manager.current_round)

    def replay_room(self, code: str, player_id: str) -> dict[str, Any]:
        room, error = self._lookup(code, player_id)
        if error is not None:
            return error
        if player_id != room.host_player_id:
            return _fail("forbidden", "not_host")
        if room.manager.phase != "results":
            return _fail("invalid_state", "not_finished")

        self._cancel_preload(room.room_code)
        room.manager.reset_to_waiting()
        room.track_pool = []
        room.round_modes = {}
        room.round_choices = {}
        room.latest_reveal = None
        for player in room.players.values():
            player.reset_stats()
            player.ready = False
        logger.info("room.replay room=%s", room.room_code)
        return _ok(roomCode=room.room_code, phase=room.manager.phase)

    # Reads

    def room_state(self, code: str, viewer_id: str | None = None) -> dict[str, Any]:
        room, error = self._lookup(code)
        if error is not None:
            return error
        now = self._clock()
        round_number = room.manager.current_round
        mode = self._round_mode(room, round_number) if round_number > 0 else None
        return _ok(
            **build_room_state(
                room,
                viewer_id=viewer_id,
                now_ms=now,
                mode=mode,
                choices=self._current_choices(room, mode),
                leaderboard_top_n=self._config.leaderboard_top_n,
            )
        )

    def room_results(self, code: str) -> dict[str, Any]:
        room, error = self._lookup(code)
        if error is not None:
            return error
        return _ok(**build_results_payload(room))

    def public_rooms(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for room in list(self._rooms.values()):
            self._tick(room)
            if room.visibility != "public" or room.manager.phase != "waiting":
                continue
            host = room.players.get(room.host_player_id or "")
            rows.append(
                {
                    "roomCode": room.room_code,
                    "playerCount": len(room.players),
                    "maxPlayers": self._config.max_players,
                    "categoryQuery": room.category_query,
                    "hostDisplayName": host.display_name if host else None,
                    "createdAtMs": room.created_at_ms,
                }
            )
        rows.sort(key=lambda row: row["createdAtMs"], reverse=True)
        return rows

    def diagnostics(self) -> dict[str, Any]:
        phases = Counter(room.manager.phase for room in self._rooms.values())
        return {
            "rooms": len(self._rooms),
            "players": sum(len(room.players) for room in self._rooms.values()),
            "phases": dict(phases),
            "preloadJobs": sum(1 for task in self._preload_jobs.values() if not task.done()),
            "startsInFlight": len(self._starting),
            "trackCache": self._track_cache.stats(),
        }

    async def shutdown(self) -> None:
        jobs = list(self._preload_jobs.values())
        self._preload_jobs.clear()
        for task in jobs:
            task.cancel()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)
