"""Convenience exports for service layer."""
from .group_builder import BuildReport, build, build_with_report
from .playback_clock import AsyncioClock, ClockStatus, ManualClock, PlaybackClock
from .playback_errors import ClockError, InvalidSeekError, PlaybackError, SessionNotFoundError
from .playback_sessions import PlaybackSession, PlaybackSessionManager, session_manager
from .playback_stream import PlaybackStreamManager, playback_stream_manager
from .sequencer import PlaybackSnapshot, PlaybackStatus, Sequencer, segment_progress
from .story_media import AuthorGroup, AuthorRef, MediaItem, MediaKind
from .story_service import create_story, list_active_items, list_story_feed

__all__ = [
    "BuildReport",
    "build",
    "build_with_report",
    "AsyncioClock",
    "ClockStatus",
    "ManualClock",
    "PlaybackClock",
    "ClockError",
    "InvalidSeekError",
    "PlaybackError",
    "SessionNotFoundError",
    "PlaybackSession",
    "PlaybackSessionManager",
    "session_manager",
    "PlaybackStreamManager",
    "playback_stream_manager",
    "PlaybackSnapshot",
    "PlaybackStatus",
    "Sequencer",
    "segment_progress",
    "AuthorGroup",
    "AuthorRef",
    "MediaItem",
    "MediaKind",
    "create_story",
    "list_active_items",
    "list_story_feed",
]
