"""Business logic for ephemeral stories and their playback snapshots."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..constants import DEFAULT_IMAGE_DURATION_MS
from ..models import Story, User
from .group_builder import build
from .story_media import AuthorGroup, AuthorRef, MediaItem, MediaKind, as_utc, default_duration_ms

_MIN_EXPIRY_HOURS = 1
_MAX_EXPIRY_HOURS = 48


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _author_ref(author: User | None) -> AuthorRef | None:
    if author is None:
        return None
    return AuthorRef(
        id=author.id,
        username=author.username,
        display_name=author.display_name,
        avatar_url=author.avatar_url,
    )


def to_media_item(story: Story, author: User | None, *, image_duration_ms: int = DEFAULT_IMAGE_DURATION_MS) -> MediaItem:
    kind = MediaKind.from_content_type(story.media_content_type)
    return MediaItem(
        id=story.id,
        author=_author_ref(author),
        kind=kind,
        duration_ms=default_duration_ms(kind, story.duration_ms, image_duration_ms=image_duration_ms),
        created_at=as_utc(story.created_at),
        expires_at=as_utc(story.expires_at),
        media_url=story.media_url,
    )


def list_active_items(
    db: Session,
    *,
    now: datetime | None = None,
    image_duration_ms: int = DEFAULT_IMAGE_DURATION_MS,
) -> list[MediaItem]:
    """Return unexpired stories oldest first, as an immutable playback snapshot."""

    cutoff = now or _now()
    statement = (
        select(Story, User)
        .outerjoin(User, Story.user_id == User.id)
        .where(Story.expires_at > cutoff)
        .order_by(Story.created_at.asc(), Story.id.asc())
    )
    return [
        to_media_item(story, author, image_duration_ms=image_duration_ms)
        for story, author in db.execute(statement).all()
    ]


def list_story_feed(
    db: Session,
    *,
    now: datetime | None = None,
    image_duration_ms: int = DEFAULT_IMAGE_DURATION_MS,
) -> list[AuthorGroup]:
    return build(list_active_items(db, now=now, image_duration_ms=image_duration_ms))


def create_story(
    db: Session,
    *,
    user_id: UUID,
    media_url: str,
    media_content_type: str | None = None,
    duration_ms: int | None = None,
    expires_in_hours: int = 24,
) -> Story:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    media_url_value = (media_url or "").strip()
    if not media_url_value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Story media is missing a URL")
    normalized_type = (media_content_type or "").strip().lower() or None
    if MediaKind.from_content_type(normalized_type) is MediaKind.IMAGE:
        # Images always play for the reference duration.
        duration_ms = None

    now = _now()
    expires_at = now + timedelta(hours=max(_MIN_EXPIRY_HOURS, min(_MAX_EXPIRY_HOURS, expires_in_hours)))

    story = Story(
        user_id=user_id,
        media_url=media_url_value,
        media_content_type=normalized_type,
        duration_ms=duration_ms,
        created_at=now,
        expires_at=expires_at,
    )
    db.add(story)
    db.commit()
    db.refresh(story)
    return story


__all__ = ["create_story", "list_active_items", "list_story_feed", "to_media_item"]
