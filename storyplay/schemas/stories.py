"""Pydantic schemas for ephemeral stories."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from storyplay.services.story_media import MediaKind


class StoryCreate(BaseModel):
    user_id: UUID
    media_url: str = Field(min_length=1, max_length=2048)
    media_content_type: str | None = Field(default=None, max_length=255)
    duration_ms: int | None = Field(default=None, gt=0)
    expires_in_hours: int = Field(default=24, ge=1, le=48)


class StoryItem(BaseModel):
    id: UUID
    media_url: str | None = None
    kind: MediaKind
    duration_ms: int
    created_at: datetime
    expires_at: datetime


class StoryAuthor(BaseModel):
    id: UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class StoryBucket(BaseModel):
    user: StoryAuthor
    stories: list[StoryItem]


class StoryFeedResponse(BaseModel):
    items: list[StoryBucket]


__all__ = [
    "StoryCreate",
    "StoryItem",
    "StoryAuthor",
    "StoryBucket",
    "StoryFeedResponse",
]
