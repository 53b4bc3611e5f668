"""WebSocket fanout for playback state changes, one channel per session."""
from __future__ import annotations

import asyncio
from typing import Any
from uuid import UUID

from fastapi import WebSocket


class PlaybackStreamManager:
    """Tracks per-session WebSocket subscribers and queues payloads for them.

    ``publish`` is synchronous so it can be called straight from a sequencer
    listener; each connection drains its own queue, which keeps the order in
    which states were produced.
    """

    def __init__(self) -> None:
        self._channels: dict[UUID, dict[WebSocket, asyncio.Queue[dict[str, Any]]]] = {}
        self._connections: dict[WebSocket, UUID] = {}
        self._lock = asyncio.Lock()

    async def connect(self, session_id: UUID, websocket: WebSocket) -> asyncio.Queue[dict[str, Any]]:
        await websocket.accept()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        async with self._lock:
            group = self._channels.setdefault(session_id, {})
            group[websocket] = queue
            self._connections[websocket] = session_id
        return queue

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            session_id = self._connections.pop(websocket, None)
            if session_id is None:
                return
            group = self._channels.get(session_id)
            if group is None:
                return
            group.pop(websocket, None)
            if not group:
                self._channels.pop(session_id, None)

    def publish(self, session_id: UUID, payload: dict[str, Any]) -> None:
        for queue in list(self._channels.get(session_id, {}).values()):
            queue.put_nowait(payload)


playback_stream_manager = PlaybackStreamManager()


__all__ = ["playback_stream_manager", "PlaybackStreamManager"]
