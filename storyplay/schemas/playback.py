"""Pydantic schemas for viewer playback sessions."""
from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class PlaybackAction(str, Enum):
    NEXT = "next"
    PREV = "prev"
    PAUSE = "pause"
    RESUME = "resume"
    TOGGLE = "toggle"
    JUMP = "jump"
    TAP = "tap"
    CLOSE = "close"


class PlaybackOpenRequest(BaseModel):
    start_author_id: UUID | None = None
    start_item_id: UUID | None = None


class PlaybackCommand(BaseModel):
    action: PlaybackAction
    author_index: int | None = Field(default=None, ge=0)
    item_index: int | None = Field(default=None, ge=0)
    position: float | None = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_arguments(self) -> "PlaybackCommand":
        if self.action is PlaybackAction.JUMP and (self.author_index is None or self.item_index is None):
            raise ValueError("jump requires author_index and item_index")
        if self.action is PlaybackAction.TAP and self.position is None:
            raise ValueError("tap requires position")
        return self


class DurationReport(BaseModel):
    item_id: UUID
    duration_ms: int = Field(gt=0)


class PlaybackSessionView(BaseModel):
    session_id: UUID
    status: str
    author_index: int
    item_index: int
    elapsed_ratio: float
    paused: bool
    closed: bool
    author_id: UUID | None = None
    item_id: UUID | None = None
    has_previous: bool
    has_next: bool
    segments: list[float] = []
    group_count: int


class DurationReportResponse(BaseModel):
    applied: bool
    session: PlaybackSessionView


__all__ = [
    "DurationReport",
    "DurationReportResponse",
    "PlaybackAction",
    "PlaybackCommand",
    "PlaybackOpenRequest",
    "PlaybackSessionView",
]
