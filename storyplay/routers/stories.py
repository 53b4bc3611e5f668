"""API routes for ephemeral stories."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from storyplay.config import get_settings
from storyplay.database import get_session
from storyplay.schemas import StoryAuthor, StoryBucket, StoryCreate, StoryFeedResponse, StoryItem
from storyplay.services import AuthorGroup, MediaItem, create_story, list_story_feed
from storyplay.services.story_service import to_media_item

router = APIRouter(prefix="/stories", tags=["stories"])


def _serialize_item(item: MediaItem) -> StoryItem:
    return StoryItem(
        id=item.id,
        media_url=item.media_url,
        kind=item.kind,
        duration_ms=item.duration_ms,
        created_at=item.created_at,
        expires_at=item.expires_at,
    )


def _serialize_group(group: AuthorGroup) -> StoryBucket:
    author = group.author
    return StoryBucket(
        user=StoryAuthor(
            id=author.id,
            username=author.username,
            display_name=author.display_name,
            avatar_url=author.avatar_url,
        ),
        stories=[_serialize_item(item) for item in group.items],
    )


@router.get("/feed", response_model=StoryFeedResponse)
async def list_story_feed_endpoint(db: Session = Depends(get_session)) -> StoryFeedResponse:
    groups = list_story_feed(db, image_duration_ms=get_settings().image_duration_ms)
    return StoryFeedResponse(items=[_serialize_group(group) for group in groups])


@router.post("/", response_model=StoryItem, status_code=status.HTTP_201_CREATED)
async def create_story_endpoint(payload: StoryCreate, db: Session = Depends(get_session)) -> StoryItem:
    story = create_story(
        db,
        user_id=payload.user_id,
        media_url=payload.media_url,
        media_content_type=payload.media_content_type,
        duration_ms=payload.duration_ms,
        expires_in_hours=payload.expires_in_hours,
    )
    item = to_media_item(story, story.author, image_duration_ms=get_settings().image_duration_ms)
    return _serialize_item(item)


__all__ = ["router"]
