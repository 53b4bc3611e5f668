"""Project-wide constant values."""
from __future__ import annotations

DEFAULT_TICK_MS = 100

DEFAULT_IMAGE_DURATION_MS = 5000  # reference display time for still images

TAP_ZONE_SPLIT = 0.5

__all__ = ["DEFAULT_IMAGE_DURATION_MS", "DEFAULT_TICK_MS", "TAP_ZONE_SPLIT"]
