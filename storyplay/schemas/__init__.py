"""Convenience exports for schema layer."""
from .playback import (
    DurationReport,
    DurationReportResponse,
    PlaybackAction,
    PlaybackCommand,
    PlaybackOpenRequest,
    PlaybackSessionView,
)
from .stories import StoryAuthor, StoryBucket, StoryCreate, StoryFeedResponse, StoryItem

__all__ = [
    "DurationReport",
    "DurationReportResponse",
    "PlaybackAction",
    "PlaybackCommand",
    "PlaybackOpenRequest",
    "PlaybackSessionView",
    "StoryAuthor",
    "StoryBucket",
    "StoryCreate",
    "StoryFeedResponse",
    "StoryItem",
]
