"""Aggregate router exports."""
from .playback import router as playback_router
from .playback import ws_router as playback_ws_router
from .stories import router as stories_router

__all__ = [
    "playback_router",
    "playback_ws_router",
    "stories_router",
]
