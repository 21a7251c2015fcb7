"""Presence registry: local connection handles plus the shared reachability set.

Presence is a liveness aid. Every failure against the shared store or the
relay is logged and swallowed so that callers never lose a write because a
user looked offline.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from dm_service.application.ports.bus import PushRelay
from dm_service.application.ports.presence import LocalConnections, ReachabilitySet
from dm_service.application.uow import UoWFactory

logger = logging.getLogger(__name__)

USER_ONLINE = "user_online"
USER_OFFLINE = "user_offline"


class PresenceRegistry:
    def __init__(
        self,
        local: LocalConnections,
        reachability: ReachabilitySet,
        uow_factory: UoWFactory,
        relay: PushRelay | None = None,
    ) -> None:
        self._local = local
        self._reachability = reachability
        self._uow_factory = uow_factory
        self._relay = relay

    @property
    def local(self) -> LocalConnections:
        return self._local

    async def register(self, user_id: int, connection: Any, *, username: str | None = None) -> None:
        self._local.bind(user_id, connection)
        try:
            await self._reachability.add(user_id)
        except Exception:
            logger.warning("Failed to add user %d to reachability set", user_id, exc_info=True)
        now = await self._stamp_last_seen(user_id)
        await self._broadcast(
            USER_ONLINE,
            {"user_id": user_id, "username": username, "last_seen": now.isoformat()},
            exclude=user_id,
        )
        logger.info("User connected: %d", user_id)

    async def unregister(self, user_id: int, connection: Any, *, username: str | None = None) -> None:
        gone = self._local.release(user_id, connection)
        try:
            gone = await self._reachability.remove(user_id)
        except Exception:
            # Without the shared count only the local view is known
            logger.warning(
                "Failed to remove user %d from reachability set", user_id, exc_info=True,
            )
        now = await self._stamp_last_seen(user_id)
        if gone:
            await self._broadcast(
                USER_OFFLINE,
                {"user_id": user_id, "username": username, "last_seen": now.isoformat()},
                exclude=user_id,
            )
        logger.info("User disconnected: %d", user_id)

    async def is_reachable(self, user_id: int) -> bool:
        try:
            return await self._reachability.contains(user_id)
        except Exception:
            logger.warning("Reachability check failed for user %d", user_id, exc_info=True)
            return self._local.get(user_id) is not None

    def route_local(self, user_id: int) -> Any | None:
        return self._local.get(user_id)

    async def push(self, user_id: int, event: str, data: dict[str, Any]) -> bool:
        """Best-effort delivery of one event to a user.

        Returns True if a push was attempted on a live route, False if the user
        is not reachable or the push failed.
        """
        if self.route_local(user_id) is not None:
            return await self._local.send_to_user(user_id, event, data)

        if self._relay is None or not await self.is_reachable(user_id):
            return False

        try:
            await self._relay.relay(event, data, target=user_id)
        except Exception:
            logger.warning("Relay push of %s to user %d failed", event, user_id, exc_info=True)
            return False
        return True

    async def online_count(self) -> int:
        return await self._reachability.count()

    async def online_users(self) -> list[int]:
        return await self._reachability.members()

    async def _stamp_last_seen(self, user_id: int) -> datetime:
        now = datetime.now(timezone.utc)
        try:
            async with self._uow_factory() as uow:
                await uow.users_w.touch_last_seen(user_id, now)
                await uow.commit()
        except Exception:
            logger.warning("Failed to update last_seen for user %d", user_id, exc_info=True)
        return now

    async def _broadcast(self, event: str, data: dict[str, Any], *, exclude: int) -> None:
        try:
            await self._local.broadcast(event, data, exclude=exclude)
            if self._relay is not None:
                await self._relay.relay(event, data, exclude=exclude)
        except Exception:
            logger.warning("Presence broadcast %s failed", event, exc_info=True)
