"""Exception hierarchy shared by the playback services."""
from __future__ import annotations


class PlaybackError(RuntimeError):
    """Base class for playback subsystem failures."""


class ClockError(PlaybackError):
    """Raised when a clock is armed while another arming is still live."""


class InvalidSeekError(PlaybackError, ValueError):
    """Raised when a seek targets a position outside the loaded groups."""


class SessionNotFoundError(PlaybackError, KeyError):
    """Raised when a playback session id is not registered."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


__all__ = ["ClockError", "InvalidSeekError", "PlaybackError", "SessionNotFoundError"]
