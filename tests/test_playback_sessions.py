"""Tests for the id-addressed playback facade and the session registry."""
from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_storyplay.db")

from storyplay.services.playback_clock import ManualClock  # noqa: E402
from storyplay.services.playback_errors import SessionNotFoundError  # noqa: E402
from storyplay.services.playback_sessions import PlaybackSession, PlaybackSessionManager  # noqa: E402
from storyplay.services.sequencer import PlaybackStatus  # noqa: E402
from storyplay.services.story_media import AuthorRef, MediaItem, MediaKind  # noqa: E402

_CREATED = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _item(author: AuthorRef | None, minutes: int = 0) -> MediaItem:
    created = _CREATED + timedelta(minutes=minutes)
    return MediaItem(
        id=uuid.uuid4(),
        author=author,
        kind=MediaKind.IMAGE,
        duration_ms=5000,
        created_at=created,
        expires_at=created + timedelta(hours=24),
    )


@pytest.fixture
def authors() -> tuple[AuthorRef, AuthorRef]:
    return AuthorRef(id=uuid.uuid4(), username="ana"), AuthorRef(id=uuid.uuid4(), username="ben")


@pytest.fixture
def items(authors) -> list[MediaItem]:
    ana, ben = authors
    return [_item(ana, 1), _item(ana, 2), _item(ben, 3), _item(None, 4)]


@pytest.fixture
def manager() -> PlaybackSessionManager:
    return PlaybackSessionManager(lambda: ManualClock(resolution_ms=100))


@pytest.fixture
def session(manager: PlaybackSessionManager) -> PlaybackSession:
    return manager.create()


def _clock(session: PlaybackSession) -> ManualClock:
    clock = session.sequencer.clock
    assert isinstance(clock, ManualClock)
    return clock


def test_open_builds_groups_and_keeps_report(session: PlaybackSession, items) -> None:
    session.open(items)

    assert [len(group) for group in session.groups] == [2, 1]
    assert session.report.missing_author == (items[3].id,)
    assert session.status is PlaybackStatus.PLAYING


def test_open_resolves_start_item_id(session: PlaybackSession, items) -> None:
    session.open(items, start_item_id=items[1].id)
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == (0, 1)


def test_open_resolves_start_author_id(session: PlaybackSession, items, authors) -> None:
    session.open(items, start_author_id=authors[1].id)
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == (1, 0)


def test_start_item_id_takes_precedence_over_author(session: PlaybackSession, items, authors) -> None:
    session.open(items, start_author_id=authors[1].id, start_item_id=items[1].id)
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == (0, 1)


def test_unknown_start_ids_fall_back_to_first_item(session: PlaybackSession, items) -> None:
    session.open(items, start_author_id=uuid.uuid4(), start_item_id=uuid.uuid4())
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == (0, 0)


def test_open_with_only_unplayable_items_closes(session: PlaybackSession) -> None:
    session.open([_item(None)])
    assert session.status is PlaybackStatus.CLOSED
    assert session.closed_at is not None


@pytest.mark.parametrize(
    "position, expected",
    [
        (0.0, (0, 0)),
        (0.49, (0, 0)),
        (0.5, (1, 0)),
        (1.0, (1, 0)),
    ],
)
def test_tap_zones_navigate(session: PlaybackSession, items, position: float, expected) -> None:
    session.open(items, start_item_id=items[1].id)
    session.tap(position)
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == expected


def test_tap_outside_viewer_is_rejected(session: PlaybackSession, items) -> None:
    session.open(items)
    with pytest.raises(ValueError):
        session.tap(1.5)


def test_toggle_pause_flips_state(session: PlaybackSession, items) -> None:
    session.open(items)
    session.toggle_pause()
    assert session.status is PlaybackStatus.PAUSED
    session.toggle_pause()
    assert session.status is PlaybackStatus.PLAYING


def test_view_describes_current_position(session: PlaybackSession, items, authors) -> None:
    session.open(items)
    _clock(session).fire(10)

    view = session.view()

    assert view["session_id"] == session.id
    assert view["status"] == "playing"
    assert view["author_id"] == authors[0].id
    assert view["item_id"] == items[0].id
    assert view["elapsed_ratio"] == pytest.approx(0.2)
    assert view["segments"] == [pytest.approx(0.2), 0.0]
    assert view["has_previous"] is False
    assert view["has_next"] is True
    assert view["group_count"] == 2


def test_view_after_close_has_no_current_item(session: PlaybackSession, items) -> None:
    session.open(items)
    session.close()

    view = session.view()

    assert view["closed"] is True
    assert view["item_id"] is None
    assert view["segments"] == []
    assert view["has_next"] is False


def test_duration_report_through_session(session: PlaybackSession, items) -> None:
    session.open(items)
    assert session.report_duration(items[0].id, 1000) is True
    _clock(session).fire(10)
    snapshot = session.snapshot()
    assert (snapshot.author_index, snapshot.item_index) == (0, 1)


def test_manager_get_and_discard(manager: PlaybackSessionManager, session: PlaybackSession, items) -> None:
    session.open(items)
    assert manager.get(session.id) is session
    assert session.id in manager

    manager.discard(session.id)

    assert session.status is PlaybackStatus.CLOSED
    assert len(manager) == 0
    with pytest.raises(SessionNotFoundError):
        manager.get(session.id)
    with pytest.raises(KeyError):
        manager.discard(session.id)


def test_manager_prunes_only_sessions_closed_long_enough(manager: PlaybackSessionManager, items) -> None:
    live = manager.create()
    live.open(items)
    closed = manager.create()
    closed.open(items)
    closed.close()
    assert closed.closed_at is not None

    assert manager.prune(60.0, now=closed.closed_at + 10) == 0
    assert manager.prune(60.0, now=closed.closed_at + 61) == 1

    assert live.id in manager
    assert closed.id not in manager


def test_reopening_clears_closed_marker(session: PlaybackSession, items) -> None:
    session.open(items)
    session.close()
    session.open(items)
    assert session.closed_at is None


def test_close_all_stops_every_session(manager: PlaybackSessionManager, items) -> None:
    sessions = [manager.create() for _ in range(3)]
    for session in sessions:
        session.open(items)

    manager.close_all()

    assert len(manager) == 0
    assert all(session.status is PlaybackStatus.CLOSED for session in sessions)


def test_manager_prunes_idle_open_and_unopened_sessions(manager: PlaybackSessionManager, items) -> None:
    paused = manager.create()
    paused.open(items)
    paused.pause()
    unopened = manager.create()
    reference = max(paused.last_activity, unopened.last_activity)

    assert manager.prune(60.0, now=reference + 10_000) == 0
    assert manager.prune(60.0, idle_seconds=600.0, now=reference + 10) == 0
    assert manager.prune(60.0, idle_seconds=600.0, now=reference + 601) == 2

    assert len(manager) == 0
    assert paused.status is PlaybackStatus.CLOSED


def test_commands_and_notifications_refresh_last_activity(manager: PlaybackSessionManager, items) -> None:
    session = manager.create()
    session.open(items)
    session.last_activity = 0.0

    session.pause()
    assert session.last_activity > 0.0

    session.last_activity = 0.0
    session.resume()
    _clock(session).fire()
    assert session.last_activity > 0.0

    assert manager.prune(60.0, idle_seconds=600.0, now=session.last_activity + 1) == 0
    assert session.id in manager


def test_view_flags_follow_sequencer(session: PlaybackSession, items) -> None:
    session.open(items, start_item_id=items[1].id)

    view = session.view()

    assert view["has_previous"] is session.sequencer.has_previous is True
    assert view["has_next"] is session.sequencer.has_next is True
