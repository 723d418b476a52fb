from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class CreateRoomRequest(BaseModel):
    visibility: Literal["public", "private"] = Field(default="private")
    categoryQuery: str = Field(default="", max_length=200)


class JoinRoomRequest(BaseModel):
    displayName: str = Field(min_length=1, max_length=64)
    userId: str | None = Field(default=None, max_length=128)

    @field_validator("displayName")
    @classmethod
    def validate_display_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Display name must not be blank")
        return trimmed


class PlayerRequest(BaseModel):
    playerId: str = Field(min_length=1, max_length=16)


class KickPlayerRequest(PlayerRequest):
    targetPlayerId: str = Field(min_length=1, max_length=16)


class ReadyRequest(PlayerRequest):
    ready: bool = True


class SetSourceRequest(PlayerRequest):
    categoryQuery: str = Field(min_length=1, max_length=200)


class AnswerRequest(PlayerRequest):
    answer: str = Field(min_length=1, max_length=200)


class DraftAnswerRequest(PlayerRequest):
    draft: str = Field(default="", max_length=200)
