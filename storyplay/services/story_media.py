"""Immutable value types describing story media handed to the playback layer."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from ..constants import DEFAULT_IMAGE_DURATION_MS


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> "MediaKind":
        if content_type and content_type.strip().lower().startswith("video/"):
            return cls.VIDEO
        return cls.IMAGE


@dataclass(frozen=True, slots=True)
class AuthorRef:
    """Lightweight reference to the author owning a story."""

    id: UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class MediaItem:
    """A single story frame as seen by the sequencer.

    ``author`` is ``None`` when the owning user could not be resolved; such
    items never reach playback because the group builder drops them.
    """

    id: UUID
    author: AuthorRef | None
    kind: MediaKind
    duration_ms: int
    created_at: datetime
    expires_at: datetime
    media_url: str | None = None

    def __post_init__(self) -> None:
        if self.duration_ms <= 0:
            raise ValueError("duration_ms must be positive")

    def is_expired(self, reference: datetime) -> bool:
        return as_utc(self.expires_at) <= as_utc(reference)


@dataclass(frozen=True, slots=True)
class AuthorGroup:
    """Ordered, non-empty run of items belonging to one author."""

    author: AuthorRef
    items: tuple[MediaItem, ...]

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("author groups must contain at least one item")

    def __len__(self) -> int:
        return len(self.items)

    @property
    def last_index(self) -> int:
        return len(self.items) - 1


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by sqlite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def default_duration_ms(
    kind: MediaKind,
    natural_duration_ms: int | None = None,
    *,
    image_duration_ms: int = DEFAULT_IMAGE_DURATION_MS,
) -> int:
    """Resolve the display time of an item before any decoder report arrives."""

    if kind is MediaKind.VIDEO and natural_duration_ms is not None and natural_duration_ms > 0:
        return int(natural_duration_ms)
    return image_duration_ms


__all__ = [
    "AuthorGroup",
    "AuthorRef",
    "MediaItem",
    "MediaKind",
    "as_utc",
    "default_duration_ms",
]
