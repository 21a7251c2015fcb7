"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

from dm_service.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks the WebSocket connections this process holds, per user.

    Implements application.ports.presence.LocalConnections.
    """

    def __init__(self) -> None:
        self._connections: dict[int, list[WebSocket]] = {}

    def bind(self, user_id: int, connection: WebSocket) -> None:
        conns = self._connections.setdefault(user_id, [])
        if connection not in conns:
            conns.append(connection)
        logger.debug("WS bound: %d (users=%d)", user_id, len(self._connections))

    def release(self, user_id: int, connection: WebSocket) -> bool:
        conns = self._connections.get(user_id)
        if conns and connection in conns:
            conns.remove(connection)
        if not conns:
            self._connections.pop(user_id, None)
            return True
        return False

    def get(self, user_id: int) -> WebSocket | None:
        conns = self._connections.get(user_id)
        return conns[-1] if conns else None

    def connected_users(self) -> list[int]:
        return list(self._connections)

    async def send_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> bool:
        """Send to every local connection of a user. True if at least one write succeeded."""
        raw = WsOutbound(type=event, data=data).model_dump_json()
        delivered = False
        dead: list[WebSocket] = []
        for ws in list(self._connections.get(user_id, [])):
            try:
                await ws.send_text(raw)
                delivered = True
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.release(user_id, ws)
        return delivered

    async def broadcast(
        self,
        event: str,
        data: dict[str, Any],
        *,
        exclude: int | None = None,
    ) -> None:
        """Send to every local connection except those of ``exclude``."""
        raw = WsOutbound(type=event, data=data).model_dump_json()
        dead: list[tuple[int, WebSocket]] = []
        for user_id, conns in list(self._connections.items()):
            if user_id == exclude:
                continue
            for ws in list(conns):
                try:
                    await ws.send_text(raw)
                except Exception:
                    dead.append((user_id, ws))
        for user_id, ws in dead:
            self.release(user_id, ws)
