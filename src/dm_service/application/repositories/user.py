from __future__ import annotations

from datetime import datetime
from typing import Protocol

from dm_service.domain.entities.user import User


class UserReader(Protocol):
    async def get_by_id(self, user_id: int) -> User | None: ...

    async def list_active(self) -> list[User]: ...

    async def list_by_ids(self, user_ids: list[int]) -> list[User]: ...


class UserWriter(Protocol):
    async def touch_last_seen(self, user_id: int, ts: datetime) -> None: ...
