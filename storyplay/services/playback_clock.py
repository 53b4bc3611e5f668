"""Periodic tick sources that drive story auto-advance.

A clock emits ``on_tick(delta_ms)`` at a fixed resolution while it is armed.
Exactly one arming can be live at a time: callers must ``cancel()`` before
arming again, and once ``cancel()`` returns no callback from the previous
arming fires. ``suspend()`` keeps the phase of the interrupted interval so
that ``resume()`` continues from it without a burst of catch-up ticks.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Protocol

from ..constants import DEFAULT_TICK_MS
from .playback_errors import ClockError

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]


class ClockStatus(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    SUSPENDED = "suspended"


class PlaybackClock(Protocol):
    resolution_ms: int

    @property
    def status(self) -> ClockStatus: ...

    def arm(self, on_tick: TickCallback) -> None: ...

    def suspend(self) -> None: ...

    def resume(self) -> None: ...

    def cancel(self) -> None: ...


def _validate_resolution(resolution_ms: int) -> int:
    if resolution_ms <= 0:
        raise ValueError("resolution_ms must be positive")
    return int(resolution_ms)


class AsyncioClock:
    """Clock backed by ``loop.call_later`` on the running event loop."""

    def __init__(
        self,
        resolution_ms: int = DEFAULT_TICK_MS,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.resolution_ms = _validate_resolution(resolution_ms)
        self._bound_loop = loop
        self._loop: asyncio.AbstractEventLoop | None = loop
        self._status = ClockStatus.IDLE
        self._callback: TickCallback | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._generation = 0
        self._due_at = 0.0
        self._remaining_ms = 0.0

    @property
    def status(self) -> ClockStatus:
        return self._status

    def arm(self, on_tick: TickCallback) -> None:
        if self._status is not ClockStatus.IDLE:
            raise ClockError(f"clock is already {self._status.value}; cancel() it before arming")
        # Each arming binds to the loop it was armed from unless one was given explicitly.
        self._loop = self._bound_loop or asyncio.get_running_loop()
        self._callback = on_tick
        self._status = ClockStatus.ARMED
        self._generation += 1
        self._schedule(self.resolution_ms)

    def suspend(self) -> None:
        if self._status is not ClockStatus.ARMED:
            return
        assert self._loop is not None
        self._remaining_ms = max(0.0, (self._due_at - self._loop.time()) * 1000.0)
        self._unschedule()
        self._generation += 1
        self._status = ClockStatus.SUSPENDED

    def resume(self) -> None:
        if self._status is not ClockStatus.SUSPENDED:
            return
        self._status = ClockStatus.ARMED
        self._generation += 1
        self._schedule(self._remaining_ms)

    def cancel(self) -> None:
        self._unschedule()
        self._generation += 1
        self._callback = None
        self._remaining_ms = 0.0
        self._status = ClockStatus.IDLE

    def _schedule(self, delay_ms: float) -> None:
        assert self._loop is not None
        delay = delay_ms / 1000.0
        self._due_at = self._loop.time() + delay
        self._handle = self._loop.call_later(delay, self._fire, self._generation)

    def _unschedule(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int) -> None:
        # A handle that was already due when cancel() ran still gets called once.
        if generation != self._generation or self._status is not ClockStatus.ARMED:
            logger.debug("Discarding tick from superseded clock arming")
            return
        callback = self._callback
        self._schedule(self.resolution_ms)
        if callback is not None:
            callback(self.resolution_ms)


class ManualClock:
    """Clock driven explicitly by its owner.

    ``fire()`` delivers whole ticks; ``advance()`` moves virtual time forward
    and delivers a tick each time an interval boundary is crossed, keeping the
    partial phase across ``suspend()``/``resume()``.
    """

    def __init__(self, resolution_ms: int = DEFAULT_TICK_MS) -> None:
        self.resolution_ms = _validate_resolution(resolution_ms)
        self._status = ClockStatus.IDLE
        self._callback: TickCallback | None = None
        self._phase_ms = 0
        self.ticks_delivered = 0

    @property
    def status(self) -> ClockStatus:
        return self._status

    @property
    def phase_ms(self) -> int:
        return self._phase_ms

    def arm(self, on_tick: TickCallback) -> None:
        if self._status is not ClockStatus.IDLE:
            raise ClockError(f"clock is already {self._status.value}; cancel() it before arming")
        self._callback = on_tick
        self._phase_ms = 0
        self._status = ClockStatus.ARMED

    def suspend(self) -> None:
        if self._status is ClockStatus.ARMED:
            self._status = ClockStatus.SUSPENDED

    def resume(self) -> None:
        if self._status is ClockStatus.SUSPENDED:
            self._status = ClockStatus.ARMED

    def cancel(self) -> None:
        self._callback = None
        self._phase_ms = 0
        self._status = ClockStatus.IDLE

    def fire(self, count: int = 1) -> int:
        """Deliver up to ``count`` ticks, stopping once the clock is no longer armed."""

        delivered = 0
        for _ in range(count):
            if not self._deliver():
                break
            delivered += 1
        return delivered

    def advance(self, elapsed_ms: int) -> int:
        """Move virtual time forward and return the number of ticks delivered."""

        if elapsed_ms < 0:
            raise ValueError("elapsed_ms must not be negative")
        delivered = 0
        remaining = elapsed_ms
        while self._status is ClockStatus.ARMED:
            needed = self.resolution_ms - self._phase_ms
            if remaining < needed:
                self._phase_ms += remaining
                break
            remaining -= needed
            if not self._deliver():
                break
            delivered += 1
        return delivered

    def _deliver(self) -> bool:
        if self._status is not ClockStatus.ARMED or self._callback is None:
            return False
        self._phase_ms = 0
        self.ticks_delivered += 1
        self._callback(self.resolution_ms)
        return True


__all__ = [
    "AsyncioClock",
    "ClockStatus",
    "ManualClock",
    "PlaybackClock",
    "TickCallback",
]
