from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from songquiz.room_store import RoomStore
from songquiz.schemas.rooms import (
    AnswerRequest,
    CreateRoomRequest,
    DraftAnswerRequest,
    JoinRoomRequest,
    KickPlayerRequest,
    PlayerRequest,
    ReadyRequest,
    SetSourceRequest,
)

router = APIRouter(tags=["rooms"])

STATUS_HTTP_CODES = {
    "ok": 200,
    "room_not_found": 404,
    "player_not_found": 404,
    "forbidden": 403,
    "invalid_state": 409,
    "invalid_input": 400,
    "no_tracks_found": 422,
    "rate_limited": 429,
}
DEFAULT_RETRY_AFTER_SECONDS = 1


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store


def respond(result: dict[str, Any]) -> JSONResponse:
    status = str(result.get("status") or "")
    http_status = STATUS_HTTP_CODES.get(status, 500)
    headers: dict[str, str] = {}
    if status == "rate_limited":
        retry_after_ms = result.get("retryAfterMs")
        seconds = (
            max(1, math.ceil(int(retry_after_ms) / 1000))
            if isinstance(retry_after_ms, int) and retry_after_ms > 0
            else DEFAULT_RETRY_AFTER_SECONDS
        )
        headers["Retry-After"] = str(seconds)
    return JSONResponse(status_code=http_status, content=result, headers=headers or None)


@router.get("/api/rooms/public")
async def list_public_rooms(store: RoomStore = Depends(get_room_store)) -> dict[str, object]:
    rooms = store.public_rooms()
    return {"status": "ok", "rooms": rooms, "count": len(rooms)}


@router.post("/api/rooms")
async def create_room(payload: CreateRoomRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.create_room(payload.visibility, payload.categoryQuery))


@router.post("/api/rooms/{room_code}/join")
async def join_room(
    room_code: str,
    payload: JoinRoomRequest,
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    if payload.userId and payload.userId.strip():
        return respond(store.join_room_as_user(room_code, payload.userId, payload.displayName))
    return respond(store.join_room(room_code, payload.displayName))


@router.post("/api/rooms/{room_code}/leave")
async def leave_room(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.remove_player(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/kick")
async def kick_player(
    room_code: str,
    payload: KickPlayerRequest,
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    return respond(store.kick_player(room_code, payload.playerId, payload.targetPlayerId))


@router.post("/api/rooms/{room_code}/ready")
async def set_ready(room_code: str, payload: ReadyRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.set_player_ready(room_code, payload.playerId, payload.ready))


@router.post("/api/rooms/{room_code}/source")
async def set_source(
    room_code: str,
    payload: SetSourceRequest,
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    return respond(store.set_room_source(room_code, payload.playerId, payload.categoryQuery))


@router.post("/api/rooms/{room_code}/start")
async def start_game(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(await store.start_game(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/answer")
async def submit_answer(
    room_code: str,
    payload: AnswerRequest,
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    return respond(store.submit_answer(room_code, payload.playerId, payload.answer))


@router.post("/api/rooms/{room_code}/draft")
async def set_draft(
    room_code: str,
    payload: DraftAnswerRequest,
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    return respond(store.set_draft_answer(room_code, payload.playerId, payload.draft))


@router.post("/api/rooms/{room_code}/skip-guess")
async def skip_guess(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.skip_guess(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/skip-reveal")
async def skip_reveal(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.skip_reveal(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/media-ready")
async def media_ready(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.mark_media_ready(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/skip")
async def skip_round(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.skip_current_round(room_code, payload.playerId))


@router.post("/api/rooms/{room_code}/replay")
async def replay_room(room_code: str, payload: PlayerRequest, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.replay_room(room_code, payload.playerId))


@router.get("/api/rooms/{room_code}/state")
async def room_state(
    room_code: str,
    player_id: str | None = Query(default=None, alias="playerId", max_length=16),
    store: RoomStore = Depends(get_room_store),
) -> JSONResponse:
    return respond(store.room_state(room_code, player_id))


@router.get("/api/rooms/{room_code}/results")
async def room_results(room_code: str, store: RoomStore = Depends(get_room_store)) -> JSONResponse:
    return respond(store.room_results(room_code))
