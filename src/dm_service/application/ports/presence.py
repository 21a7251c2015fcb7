from __future__ import annotations

from typing import Any, Protocol


class ReachabilitySet(Protocol):
    """Cross-process count of live connections per user, across all instances."""

    async def add(self, user_id: int) -> None:
        """Count one more live connection for the user."""
        ...

    async def remove(self, user_id: int) -> bool:
        """Drop one connection. Returns True when the user has none left anywhere."""
        ...

    async def contains(self, user_id: int) -> bool: ...

    async def count(self) -> int: ...

    async def members(self) -> list[int]: ...


class LocalConnections(Protocol):
    """Process-local registry of connection handles."""

    def bind(self, user_id: int, connection: Any) -> None: ...

    def release(self, user_id: int, connection: Any) -> bool:
        """Drop one handle. Returns True when the user has no local handle left."""
        ...

    def get(self, user_id: int) -> Any | None: ...

    async def send_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> bool: ...

    async def broadcast(
        self, event: str, data: dict[str, Any], *, exclude: int | None = None,
    ) -> None: ...


class Pusher(Protocol):
    """What the send paths need from the presence registry."""

    async def push(self, user_id: int, event: str, data: dict[str, Any]) -> bool: ...
