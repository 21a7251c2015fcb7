from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from dm_service.domain.entities.auto_message import AutoMessage


class AutoMessageReader(Protocol):
    async def get_by_id(self, auto_message_id: UUID) -> AutoMessage | None: ...

    async def list_due(self, now: datetime, *, limit: int = 500) -> list[AutoMessage]:
        """Due, not queued, not sent and under the retry ceiling."""
        ...

    async def list_failed(self) -> list[AutoMessage]:
        """Unsent records that exhausted their retries with an error recorded."""
        ...

    async def count_pending(self, now: datetime) -> int: ...

    async def count_queued(self) -> int: ...

    async def count_sent(self) -> int: ...

    async def count_failed(self) -> int: ...


class AutoMessageWriter(Protocol):
    async def create(self, auto_message: AutoMessage) -> AutoMessage: ...

    async def mark_queued(self, auto_message_id: UUID) -> None: ...

    async def mark_sent(self, auto_message_id: UUID, message_id: UUID, sent_at: datetime) -> bool:
        """Transition to Sent. Returns False if the record was already Sent."""
        ...

    async def increment_retry(self, auto_message_id: UUID, error: str) -> None: ...

    async def release(self, auto_message_id: UUID) -> None:
        """Clear the queued flag so admission owns the record again."""
        ...

    async def reset_retries(self, auto_message_id: UUID) -> None: ...
