"""HTTP and WebSocket endpoints that let a viewer drive a playback session."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from storyplay.config import get_settings
from storyplay.database import get_session
from storyplay.schemas import (
    DurationReport,
    DurationReportResponse,
    PlaybackAction,
    PlaybackCommand,
    PlaybackOpenRequest,
    PlaybackSessionView,
)
from storyplay.services import (
    InvalidSeekError,
    PlaybackSession,
    PlaybackSnapshot,
    SessionNotFoundError,
    list_active_items,
    playback_stream_manager,
    session_manager,
)

router = APIRouter(prefix="/playback", tags=["playback"])
ws_router = APIRouter()
logger = logging.getLogger(__name__)


def _view(session: PlaybackSession, snapshot: PlaybackSnapshot | None = None) -> PlaybackSessionView:
    return PlaybackSessionView(**session.view(snapshot))


def _get_session_or_404(session_id: UUID) -> PlaybackSession:
    try:
        return session_manager.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playback session not found") from exc


def _publish_state(session: PlaybackSession, snapshot: PlaybackSnapshot) -> None:
    payload = {"type": "state", "session": _view(session, snapshot).model_dump(mode="json")}
    playback_stream_manager.publish(session.id, payload)


def apply_command(session: PlaybackSession, command: PlaybackCommand) -> None:
    """Dispatch a viewer command onto the session."""

    action = command.action
    if action is PlaybackAction.NEXT:
        session.next()
    elif action is PlaybackAction.PREV:
        session.prev()
    elif action is PlaybackAction.PAUSE:
        session.pause()
    elif action is PlaybackAction.RESUME:
        session.resume()
    elif action is PlaybackAction.TOGGLE:
        session.toggle_pause()
    elif action is PlaybackAction.JUMP:
        assert command.author_index is not None and command.item_index is not None
        session.jump_to(command.author_index, command.item_index)
    elif action is PlaybackAction.TAP:
        assert command.position is not None
        session.tap(command.position)
    elif action is PlaybackAction.CLOSE:
        session.close()


@router.post("/sessions", response_model=PlaybackSessionView, status_code=status.HTTP_201_CREATED)
async def open_playback_session(
    payload: PlaybackOpenRequest | None = None,
    db: Session = Depends(get_session),
) -> PlaybackSessionView:
    payload = payload or PlaybackOpenRequest()
    settings = get_settings()
    items = list_active_items(db, image_duration_ms=settings.image_duration_ms)

    session = session_manager.create()
    session.on_state_change(lambda snapshot: _publish_state(session, snapshot))
    session.open(items, payload.start_author_id, payload.start_item_id)
    if session.report.dropped:
        logger.info("Session %s opened with %d unplayable stories dropped", session.id, session.report.dropped)
    return _view(session)


@router.get("/sessions/{session_id}", response_model=PlaybackSessionView)
async def get_playback_session(session_id: UUID) -> PlaybackSessionView:
    return _view(_get_session_or_404(session_id))


@router.post("/sessions/{session_id}/commands", response_model=PlaybackSessionView)
async def send_playback_command(session_id: UUID, command: PlaybackCommand) -> PlaybackSessionView:
    session = _get_session_or_404(session_id)
    try:
        apply_command(session, command)
    except (InvalidSeekError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _view(session)


@router.post("/sessions/{session_id}/duration", response_model=DurationReportResponse)
async def report_item_duration(session_id: UUID, report: DurationReport) -> DurationReportResponse:
    session = _get_session_or_404(session_id)
    applied = session.report_duration(report.item_id, report.duration_ms)
    return DurationReportResponse(applied=applied, session=_view(session))


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_playback_session(session_id: UUID) -> Response:
    try:
        session_manager.discard(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playback session not found") from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _pump(websocket: WebSocket, queue: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        payload = await queue.get()
        await websocket.send_text(json.dumps(payload, default=str))


def _handle_socket_message(session: PlaybackSession, raw: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        payload = {"type": raw}
    if not isinstance(payload, dict):
        return {"type": "error", "detail": "Messages must be JSON objects"}

    message_type = (payload.get("type") or "").lower()
    if message_type == "ping":
        return {"type": "pong"}
    if message_type != "command":
        # Anything else just keeps the connection alive.
        return None

    try:
        command = PlaybackCommand.model_validate(payload)
        apply_command(session, command)
    except ValidationError as exc:
        return {"type": "error", "detail": exc.errors(include_url=False, include_context=False)}
    except (InvalidSeekError, ValueError) as exc:
        return {"type": "error", "detail": str(exc)}
    return None


@ws_router.websocket("/ws/playback/{session_id}")
async def playback_updates(websocket: WebSocket, session_id: UUID) -> None:
    """Stream session state to a viewer and accept its commands."""

    try:
        session = session_manager.get(session_id)
    except SessionNotFoundError:
        await websocket.close(code=4404)
        return

    queue = await playback_stream_manager.connect(session_id, websocket)
    queue.put_nowait({"type": "state", "session": _view(session).model_dump(mode="json")})
    sender = asyncio.create_task(_pump(websocket, queue))
    logger.info("Playback socket connected for session %s from %s", session_id, websocket.client)
    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            except Exception:
                logger.exception("Playback socket receive failed")
                break

            reply = _handle_socket_message(session, raw)
            if reply is not None:
                queue.put_nowait(reply)
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Playback socket send failed")
        await playback_stream_manager.disconnect(websocket)
        logger.info("Playback socket disconnected for session %s", session_id)


__all__ = ["apply_command", "router", "ws_router"]
