from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from jawara.services.visibility import Viewer, is_visible

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Websocket fan-out for inbox notifications and calendar changes.

    Each connection is registered with the viewer it was opened for so that
    event changes only reach subscribers allowed to see the event.
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)
        self._viewers: dict[str, Viewer] = {}
        self._lock = asyncio.Lock()

    async def connect(self, viewer: Viewer, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[viewer.id].add(websocket)
            self._viewers[viewer.id] = viewer

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(user_id, None)
                self._viewers.pop(user_id, None)

    async def publish(self, user_id: str, payload: dict) -> int:
        async with self._lock:
            sockets = list(self._connections.get(user_id, set()))
        return await self._send(user_id, sockets, payload)

    async def publish_event(self, event: Any, payload: dict) -> int:
        async with self._lock:
            targets = [
                (user_id, list(self._connections.get(user_id, set())))
                for user_id, viewer in self._viewers.items()
                if is_visible(viewer, event)
            ]
        delivered = 0
        for user_id, sockets in targets:
            delivered += await self._send(user_id, sockets, payload)
        return delivered

    def subscriber_count(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())

    async def _send(self, user_id: str, sockets: list[WebSocket], payload: dict) -> int:
        if not sockets:
            return 0

        delivered = 0
        stale: list[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception:  # pragma: no cover - network/runtime dependent
                stale.append(websocket)

        if stale:
            async with self._lock:
                active = self._connections.get(user_id, set())
                for socket in stale:
                    active.discard(socket)
                if not active:
                    self._connections.pop(user_id, None)
                    self._viewers.pop(user_id, None)
            logger.debug("Removed %d stale realtime websocket(s) for user %s", len(stale), user_id)
        return delivered


realtime_hub = RealtimeHub()
