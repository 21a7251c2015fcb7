from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from dm_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_between(
        self,
        user_a: int,
        user_b: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> tuple[list[Message], str | None]:
        """Newest-first page of the pair's visible messages and the next cursor, if any."""
        ...

    async def count_between(self, user_a: int, user_b: int) -> int: ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert keyed by auto_message_id. Return (message, created)."""
        ...

    async def mark_read(self, message_id: UUID, read_at: datetime) -> None: ...

    async def mark_read_from(self, sender_id: int, receiver_id: int, read_at: datetime) -> int:
        """Mark every unread visible message from sender to receiver. Return the count."""
        ...

    async def soft_delete(self, message_id: UUID, deleted_by: int, deleted_at: datetime) -> None: ...
