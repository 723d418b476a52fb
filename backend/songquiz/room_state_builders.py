from __future__ import annotations

from typing import Any

from .music_types import Track
from .room_results import build_leaderboard
from .room_types import Player, RoomSession, RoundMode

MEDIA_PHASES = frozenset({"loading", "playing"})
ROUND_PHASES = frozenset({"loading", "playing", "reveal", "leaderboard"})
REVEAL_PHASES = frozenset({"reveal", "leaderboard", "results"})


def current_track(room: RoomSession) -> Track | None:
    index = room.manager.current_round - 1
    if index < 0 or index >= len(room.track_pool):
        return None
    return room.track_pool[index]


def build_media_payload(track: Track) -> dict[str, Any]:
    # Title and artist stay hidden until the reveal.
    return {
        "trackId": track.id,
        "provider": track.provider,
        "durationSec": track.duration_sec,
        "previewUrl": track.preview_url,
        "sourceUrl": track.source_url,
        "audioUrl": track.audio_url,
    }


def build_player_payload(room: RoomSession, player: Player) -> dict[str, Any]:
    manager = room.manager
    return {
        "id": player.id,
        "displayName": player.display_name,
        "isHost": player.id == room.host_player_id,
        "ready": player.ready,
        "score": player.score,
        "streak": player.streak,
        "hasAnswered": player.id in manager.answers,
        "hasSkippedGuess": player.id in manager.guess_skips,
        "hasSkippedReveal": player.id in manager.reveal_skips,
        "mediaReady": player.id in manager.media_ready,
    }


def build_viewer_payload(room: RoomSession, viewer_id: str | None) -> dict[str, Any] | None:
    if not viewer_id or viewer_id not in room.players:
        return None
    manager = room.manager
    submitted = manager.answers.get(viewer_id)
    return {
        "playerId": viewer_id,
        "isHost": viewer_id == room.host_player_id,
        "submittedAnswer": submitted.value if submitted else None,
        "draftAnswer": manager.drafts.get(viewer_id),
        "hasFinishedGuessing": manager.has_finished_guessing(viewer_id),
    }


def build_room_state(
    room: RoomSession,
    *,
    viewer_id: str | None,
    now_ms: int,
    mode: RoundMode | None,
    choices: list[str],
    leaderboard_top_n: int,
) -> dict[str, Any]:
    manager = room.manager
    phase = manager.phase
    track = current_track(room) if phase in MEDIA_PHASES else None

    return {
        "roomCode": room.room_code,
        "visibility": room.visibility,
        "phase": phase,
        "round": manager.current_round,
        "totalRounds": manager.total_rounds,
        "deadlineMs": manager.deadline_ms,
        "remainingMs": manager.remaining_ms(now_ms),
        "serverNowMs": now_ms,
        "categoryQuery": room.category_query,
        "poolSize": len(room.track_pool),
        "hostPlayerId": room.host_player_id,
        "playerCount": len(room.players),
        "players": [build_player_payload(room, player) for player in room.players.values()],
        "viewer": build_viewer_payload(room, viewer_id),
        "mode": mode if phase in ROUND_PHASES else None,
        "choices": choices if mode == "mcq" and phase in ROUND_PHASES else [],
        "leaderboard": build_leaderboard(room, leaderboard_top_n) if room.players else [],
        "media": build_media_payload(track) if track is not None else None,
        "reveal": room.latest_reveal if phase in REVEAL_PHASES else None,
    }
