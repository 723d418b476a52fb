from __future__ import annotations

import math
from typing import Any

from .room_types import Player, RoomSession


def average_correct_response_ms(player: Player) -> float:
    if player.correct_answers <= 0:
        return math.inf
    return player.total_response_ms / player.correct_answers


def rank_players(room: RoomSession) -> list[Player]:
    """Score, then best streak, then faster mean correct answer, then join order."""
    join_order = {player_id: index for index, player_id in enumerate(room.players)}
    return sorted(
        room.players.values(),
        key=lambda player: (
            -player.score,
            -player.max_streak,
            average_correct_response_ms(player),
            join_order[player.id],
        ),
    )


def build_player_result(player: Player, rank: int) -> dict[str, Any]:
    average_ms = average_correct_response_ms(player)
    return {
        "rank": rank,
        "playerId": player.id,
        "displayName": player.display_name,
        "score": player.score,
        "maxStreak": player.max_streak,
        "correctAnswers": player.correct_answers,
        "averageResponseMs": None if math.isinf(average_ms) else round(average_ms),
    }


def build_ranking(room: RoomSession) -> list[dict[str, Any]]:
    return [build_player_result(player, index + 1) for index, player in enumerate(rank_players(room))]


def build_leaderboard(room: RoomSession, top_n: int) -> list[dict[str, Any]]:
    return [
        {
            "rank": row["rank"],
            "playerId": row["playerId"],
            "displayName": row["displayName"],
            "score": row["score"],
            "streak": room.players[row["playerId"]].streak,
        }
        for row in build_ranking(room)[: max(1, top_n)]
    ]


def build_results_payload(room: RoomSession) -> dict[str, Any]:
    manager = room.manager
    return {
        "roomCode": room.room_code,
        "phase": manager.phase,
        "finished": manager.phase == "results",
        "categoryQuery": room.category_query,
        "totalRounds": manager.total_rounds,
        "ranking": build_ranking(room),
    }
