"""Application entry point for the story playback backend."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import init_db
from .routers import playback_router, playback_ws_router, stories_router
from .services import session_manager

logger = logging.getLogger(__name__)

settings = get_settings()
APP_NAME = settings.app_name
API_VERSION = settings.api_version
DISABLE_PRUNING = (
    os.getenv("DISABLE_SESSION_PRUNING", "").lower() == "true" or os.getenv("PYTEST_CURRENT_TEST") is not None
)

app = FastAPI(title=APP_NAME, version=API_VERSION)

cors_origins = os.getenv("CORS_ORIGINS")
if cors_origins:
    origins: Iterable[str] = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
else:
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stories_router)
app.include_router(playback_router)
app.include_router(playback_ws_router)

_prune_task: asyncio.Task[None] | None = None
_prune_stop = asyncio.Event()


def _prune_once() -> None:
    """Drop sessions closed longer than the retention window or idle past the idle limit."""

    try:
        removed = session_manager.prune(
            settings.session_retention_seconds,
            idle_seconds=settings.session_idle_seconds,
        )
        if removed:
            logger.info("Session pruning removed %d sessions (%d remain)", removed, len(session_manager))
    except Exception:  # pragma: no cover - defensive
        logger.exception("Unexpected error during session pruning")


async def _prune_loop() -> None:
    """Background task that prunes closed sessions on a fixed interval."""

    while not _prune_stop.is_set():
        _prune_once()
        try:
            await asyncio.wait_for(_prune_stop.wait(), timeout=settings.prune_interval_seconds)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def _startup() -> None:
    """Ensure database schema and background tasks are ready before serving."""

    try:
        init_db()
    except Exception:  # pragma: no cover - best effort logging
        logger.exception("Database initialisation failed")
        raise

    logger.info(
        "Playback configured (tick=%dms, image_duration=%dms)",
        settings.tick_interval_ms,
        settings.image_duration_ms,
    )

    if DISABLE_PRUNING:
        logger.info("Background session pruning disabled (testing mode)")
        return

    global _prune_task
    if _prune_task is None or _prune_task.done():
        _prune_stop.clear()
        _prune_task = asyncio.create_task(_prune_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    """Stop every live session and the pruning task during shutdown."""

    session_manager.close_all()

    if DISABLE_PRUNING:
        return

    _prune_stop.set()
    if _prune_task is not None:
        try:
            await _prune_task
        except asyncio.CancelledError:  # pragma: no cover - defensive
            pass


@app.get("/api", tags=["system"])
def api_info() -> dict[str, str]:
    return {"service": APP_NAME, "version": API_VERSION}


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, object]:
    """Report liveness along with the number of registered playback sessions."""

    return {"status": "ok", "sessions": len(session_manager)}
