"""Viewer-facing playback sessions and the in-memory registry that holds them."""
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID

from ..config import get_settings
from ..constants import TAP_ZONE_SPLIT
from .group_builder import BuildReport, build_with_report
from .playback_clock import AsyncioClock, PlaybackClock
from .playback_errors import SessionNotFoundError
from .sequencer import PlaybackSnapshot, PlaybackStatus, Sequencer, StateListener, Unsubscribe, segment_progress
from .story_media import AuthorGroup, MediaItem

logger = logging.getLogger(__name__)


class PlaybackSession:
    """Public playback API for one viewer, addressed by author and item ids."""

    def __init__(self, sequencer: Sequencer, session_id: UUID | None = None) -> None:
        self.id = session_id or uuid.uuid4()
        self.sequencer = sequencer
        self.report = BuildReport()
        self.closed_at: float | None = None
        self.last_activity = time.monotonic()
        sequencer.on_state_change(self._track_state)

    def _touch(self) -> None:
        self.last_activity = time.monotonic()

    def _track_state(self, snapshot: PlaybackSnapshot) -> None:
        self._touch()
        if snapshot.closed and self.closed_at is None:
            self.closed_at = time.monotonic()
        elif not snapshot.closed:
            self.closed_at = None

    @property
    def groups(self) -> tuple[AuthorGroup, ...]:
        return self.sequencer.groups

    @property
    def status(self) -> PlaybackStatus:
        return self.sequencer.status

    def open(
        self,
        items: Iterable[MediaItem],
        start_author_id: UUID | None = None,
        start_item_id: UUID | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        self._touch()
        groups, self.report = build_with_report(items, now=now)
        author_index, item_index = _resolve_start(groups, start_author_id, start_item_id)
        self.sequencer.open(groups, author_index, item_index)

    def next(self) -> None:
        self._touch()
        self.sequencer.advance()

    def prev(self) -> None:
        self._touch()
        self.sequencer.prev()

    def pause(self) -> None:
        self._touch()
        self.sequencer.pause()

    def resume(self) -> None:
        self._touch()
        self.sequencer.resume()

    def toggle_pause(self) -> None:
        self._touch()
        if self.sequencer.status is PlaybackStatus.PAUSED:
            self.sequencer.resume()
        else:
            self.sequencer.pause()

    def jump_to(self, author_index: int, item_index: int) -> None:
        self._touch()
        self.sequencer.jump_to(author_index, item_index)

    def tap(self, position: float) -> None:
        """Handle a tap at ``position`` (0 = left edge, 1 = right edge) of the viewer."""

        if not 0.0 <= position <= 1.0:
            raise ValueError("tap position must be between 0 and 1")
        if position < TAP_ZONE_SPLIT:
            self.prev()
        else:
            self.next()

    def close(self) -> None:
        self._touch()
        self.sequencer.close()

    def report_duration(self, item_id: UUID, duration_ms: int) -> bool:
        self._touch()
        return self.sequencer.report_duration(item_id, duration_ms)

    def on_state_change(self, callback: StateListener) -> Unsubscribe:
        return self.sequencer.on_state_change(callback)

    def snapshot(self) -> PlaybackSnapshot:
        return self.sequencer.snapshot()

    def view(self, snapshot: PlaybackSnapshot | None = None) -> dict[str, Any]:
        """Flatten the session into the payload served to viewers."""

        snapshot = snapshot or self.sequencer.snapshot()
        group = None
        item = None
        if not snapshot.closed and self.groups:
            group = self.groups[snapshot.author_index]
            item = group.items[snapshot.item_index]
        return {
            "session_id": self.id,
            "status": self.sequencer.status.value,
            "author_index": snapshot.author_index,
            "item_index": snapshot.item_index,
            "elapsed_ratio": snapshot.elapsed_ratio,
            "paused": snapshot.paused,
            "closed": snapshot.closed,
            "author_id": group.author.id if group is not None else None,
            "item_id": item.id if item is not None else None,
            "has_previous": self.sequencer.has_previous,
            "has_next": self.sequencer.has_next,
            "segments": segment_progress(self.groups, snapshot),
            "group_count": len(self.groups),
        }


def _resolve_start(
    groups: list[AuthorGroup],
    start_author_id: UUID | None,
    start_item_id: UUID | None,
) -> tuple[int, int]:
    if start_item_id is not None:
        for author_index, group in enumerate(groups):
            for item_index, item in enumerate(group.items):
                if item.id == start_item_id:
                    return author_index, item_index
        logger.debug("Unknown start item %s; starting from the first story", start_item_id)
    if start_author_id is not None:
        for author_index, group in enumerate(groups):
            if group.author.id == start_author_id:
                return author_index, 0
        logger.debug("Unknown start author %s; starting from the first story", start_author_id)
    return 0, 0


class PlaybackSessionManager:
    """Registry of live viewer sessions, each with its own clock."""

    def __init__(self, clock_factory: Callable[[], PlaybackClock]) -> None:
        self._clock_factory = clock_factory
        self._sessions: dict[UUID, PlaybackSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self) -> PlaybackSession:
        session = PlaybackSession(Sequencer(self._clock_factory()))
        self._sessions[session.id] = session
        logger.info("Playback session %s created", session.id)
        return session

    def get(self, session_id: UUID) -> PlaybackSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"playback session {session_id} not found")
        return session

    def discard(self, session_id: UUID) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"playback session {session_id} not found")
        session.close()
        logger.info("Playback session %s discarded", session_id)

    def prune(
        self,
        max_age_seconds: float,
        idle_seconds: float | None = None,
        *,
        now: float | None = None,
    ) -> int:
        """Forget sessions closed for longer than ``max_age_seconds``.

        When ``idle_seconds`` is given, sessions that are still open (or were
        never opened) and have seen no command or state change for that long
        are closed and forgotten as well.
        """

        reference = time.monotonic() if now is None else now
        expired: list[UUID] = []
        abandoned: list[UUID] = []
        for session_id, session in self._sessions.items():
            if session.closed_at is not None:
                if reference - session.closed_at >= max_age_seconds:
                    expired.append(session_id)
            elif idle_seconds is not None and reference - session.last_activity >= idle_seconds:
                abandoned.append(session_id)
        for session_id in abandoned:
            self._sessions.pop(session_id).close()
        for session_id in expired:
            del self._sessions[session_id]
        if expired or abandoned:
            logger.info(
                "Pruned %d closed and %d idle playback sessions",
                len(expired),
                len(abandoned),
            )
        return len(expired) + len(abandoned)

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()


def _default_clock() -> PlaybackClock:
    return AsyncioClock(get_settings().tick_interval_ms)


session_manager = PlaybackSessionManager(_default_clock)


__all__ = ["PlaybackSession", "PlaybackSessionManager", "session_manager"]
