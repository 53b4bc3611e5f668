"""State machine that sequences story playback for one viewer.

The sequencer owns the only mutable playback state. Ticks from the clock,
viewer commands and lifecycle events all mutate it through the methods below,
which are expected to be called from a single logical thread (the event loop
in the service). Every arming of the clock is bound to the epoch that was
current when it was armed, so a timer left over from a previous session can
never move the state of the next one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Sequence
from uuid import UUID

from .playback_clock import ClockStatus, PlaybackClock
from .playback_errors import InvalidSeekError
from .story_media import AuthorGroup, MediaItem

logger = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class PlaybackSnapshot:
    """Read-only view of the playback position handed to listeners."""

    author_index: int
    item_index: int
    elapsed_ratio: float
    paused: bool
    closed: bool


@dataclass(slots=True)
class PlaybackState:
    author_index: int = 0
    item_index: int = 0
    elapsed_ms: int = 0
    duration_ms: int = 1
    paused: bool = False
    closed: bool = False
    epoch: int = 0

    @property
    def elapsed_ratio(self) -> float:
        return self.elapsed_ms / self.duration_ms


StateListener = Callable[[PlaybackSnapshot], None]
Unsubscribe = Callable[[], None]


class Sequencer:
    """Drives which story item is on screen and when it moves on."""

    def __init__(self, clock: PlaybackClock) -> None:
        self._clock = clock
        self._groups: tuple[AuthorGroup, ...] = ()
        self._state = PlaybackState()
        self._status = PlaybackStatus.IDLE
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Read-only accessors

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    @property
    def epoch(self) -> int:
        return self._state.epoch

    @property
    def groups(self) -> tuple[AuthorGroup, ...]:
        return self._groups

    @property
    def clock(self) -> PlaybackClock:
        return self._clock

    @property
    def is_open(self) -> bool:
        return self._status in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED)

    @property
    def current_item(self) -> MediaItem | None:
        if not self.is_open:
            return None
        return self._groups[self._state.author_index].items[self._state.item_index]

    @property
    def has_previous(self) -> bool:
        return self.is_open and (self._state.item_index > 0 or self._state.author_index > 0)

    @property
    def has_next(self) -> bool:
        # Advancing from the final item closes the viewer, so there is always a "next" while open.
        return self.is_open

    def snapshot(self) -> PlaybackSnapshot:
        state = self._state
        return PlaybackSnapshot(
            author_index=state.author_index,
            item_index=state.item_index,
            elapsed_ratio=state.elapsed_ratio,
            paused=state.paused,
            closed=state.closed,
        )

    # ------------------------------------------------------------------
    # Subscriptions

    def on_state_change(self, callback: StateListener) -> Unsubscribe:
        """Register ``callback`` for every state change and return its remover."""

        self._listeners.append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Playback listener failed")

    # ------------------------------------------------------------------
    # Lifecycle

    def open(self, groups: Sequence[AuthorGroup], start_author_index: int = 0, start_item_index: int = 0) -> None:
        """Start a new playback epoch over ``groups``."""

        self._clock.cancel()
        self._groups = tuple(groups)
        epoch = self._state.epoch + 1

        if not self._groups:
            self._state = PlaybackState(closed=True, epoch=epoch)
            self._status = PlaybackStatus.CLOSED
            logger.info("Playback opened with no stories; closing immediately (epoch=%d)", epoch)
            self._notify()
            return

        if not self._in_bounds(start_author_index, start_item_index):
            logger.debug(
                "Clamping out-of-range start position (%s, %s) to the first item",
                start_author_index,
                start_item_index,
            )
            start_author_index, start_item_index = 0, 0

        self._state = PlaybackState(
            author_index=start_author_index,
            item_index=start_item_index,
            duration_ms=self._groups[start_author_index].items[start_item_index].duration_ms,
            epoch=epoch,
        )
        self._status = PlaybackStatus.PLAYING
        self._arm_clock()
        logger.info(
            "Playback opened (groups=%d, start=(%d, %d), epoch=%d)",
            len(self._groups),
            start_author_index,
            start_item_index,
            epoch,
        )
        self._notify()

    def close(self) -> None:
        """Stop playback for good; idempotent."""

        if not self.is_open:
            return
        self._finish()
        logger.info("Playback closed by viewer (epoch=%d)", self._state.epoch)

    def _finish(self) -> None:
        self._clock.cancel()
        self._state.closed = True
        self._state.epoch += 1
        self._status = PlaybackStatus.CLOSED
        self._notify()

    # ------------------------------------------------------------------
    # Clock plumbing

    def _arm_clock(self) -> None:
        self._clock.cancel()
        self._clock.arm(partial(self.tick, tick_epoch=self._state.epoch))

    def tick(self, delta_ms: int, tick_epoch: int) -> None:
        """Accumulate ``delta_ms`` of progress for the item on screen."""

        if tick_epoch != self._state.epoch or self._status is not PlaybackStatus.PLAYING:
            logger.debug("Ignoring stale tick (tick_epoch=%d, epoch=%d)", tick_epoch, self._state.epoch)
            return
        self._state.elapsed_ms += delta_ms
        if self._state.elapsed_ms >= self._state.duration_ms:
            # The last tick may overshoot; a closing snapshot reports exactly 1.0.
            self._state.elapsed_ms = self._state.duration_ms
            self.advance()
            return
        self._notify()

    # ------------------------------------------------------------------
    # Navigation

    def advance(self) -> None:
        """Move to the next item, the next author, or close at the end."""

        if not self.is_open:
            return
        state = self._state
        group = self._groups[state.author_index]
        if state.item_index + 1 < len(group):
            self._move_to(state.author_index, state.item_index + 1)
        elif state.author_index + 1 < len(self._groups):
            self._move_to(state.author_index + 1, 0)
        else:
            logger.info("Reached the end of the story sequence (epoch=%d)", state.epoch)
            self._finish()

    next = advance

    def prev(self) -> None:
        """Step back one item; stays put on the very first item."""

        if not self.is_open:
            return
        state = self._state
        if state.item_index > 0:
            self._move_to(state.author_index, state.item_index - 1)
        elif state.author_index > 0:
            self._move_to(state.author_index - 1, self._groups[state.author_index - 1].last_index)

    def jump_to(self, author_index: int, item_index: int) -> None:
        """Seek to an explicit position, keeping the paused flag."""

        if not self.is_open:
            return
        if not self._in_bounds(author_index, item_index):
            raise InvalidSeekError(f"position ({author_index}, {item_index}) is outside the loaded stories")
        self._move_to(author_index, item_index)

    def _move_to(self, author_index: int, item_index: int) -> None:
        state = self._state
        state.author_index = author_index
        state.item_index = item_index
        state.elapsed_ms = 0
        state.duration_ms = self._groups[author_index].items[item_index].duration_ms
        if self._status is PlaybackStatus.PLAYING:
            self._arm_clock()
        else:
            # Paused: drop the suspended phase so resume() starts the new item from a full interval.
            self._clock.cancel()
        self._notify()

    def _in_bounds(self, author_index: int, item_index: int) -> bool:
        if not 0 <= author_index < len(self._groups):
            return False
        return 0 <= item_index < len(self._groups[author_index])

    # ------------------------------------------------------------------
    # Pause / resume

    def pause(self) -> None:
        if self._status is not PlaybackStatus.PLAYING:
            return
        self._clock.suspend()
        self._state.paused = True
        self._status = PlaybackStatus.PAUSED
        self._notify()

    def resume(self) -> None:
        if self._status is not PlaybackStatus.PAUSED:
            return
        self._state.paused = False
        self._status = PlaybackStatus.PLAYING
        if self._clock.status is ClockStatus.SUSPENDED:
            self._clock.resume()
        else:
            self._arm_clock()
        self._notify()

    # ------------------------------------------------------------------
    # Duration reports

    def report_duration(self, item_id: UUID, duration_ms: int) -> bool:
        """Override the duration of the item on screen once the decoder knows it.

        Returns ``True`` when the report was applied. Reports for any other
        item are ignored; the override lasts until the item is left.
        """

        if duration_ms <= 0:
            raise ValueError("duration_ms must be positive")
        item = self.current_item
        if item is None or item.id != item_id:
            logger.debug("Ignoring duration report for inactive item %s", item_id)
            return False
        self._state.duration_ms = int(duration_ms)
        if self._status is PlaybackStatus.PLAYING and self._state.elapsed_ms >= self._state.duration_ms:
            self._state.elapsed_ms = self._state.duration_ms
            self.advance()
            return True
        # Paused progress is clamped so the ratio stays inside [0, 1).
        if self._state.elapsed_ms >= self._state.duration_ms:
            self._state.elapsed_ms = self._state.duration_ms - 1
        self._notify()
        return True


def segment_progress(groups: Sequence[AuthorGroup], snapshot: PlaybackSnapshot) -> list[float]:
    """Return per-item progress bar fill values for the author on screen."""

    if snapshot.closed or not 0 <= snapshot.author_index < len(groups):
        return []
    group = groups[snapshot.author_index]
    segments: list[float] = []
    for index in range(len(group)):
        if index < snapshot.item_index:
            segments.append(1.0)
        elif index == snapshot.item_index:
            segments.append(snapshot.elapsed_ratio)
        else:
            segments.append(0.0)
    return segments


__all__ = [
    "PlaybackSnapshot",
    "PlaybackState",
    "PlaybackStatus",
    "Sequencer",
    "StateListener",
    "Unsubscribe",
    "segment_progress",
]
