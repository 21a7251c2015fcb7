from __future__ import annotations

from typing import Any, Protocol

from dm_service.application.dto.delivery import (
    RECLAIM_CURSOR_START,
    DeliveryJob,
    QueuedJob,
    ReclaimPage,
)


class DeliveryQueue(Protocol):
    """Durable at-least-once work queue for delivery jobs."""

    async def enqueue(self, job: DeliveryJob) -> bool:
        """Hand off a job. Returns False if the broker did not accept it."""
        ...

    async def receive(self, count: int, block_ms: int) -> list[QueuedJob]: ...

    async def ack(self, queued: QueuedJob) -> None: ...

    async def reclaim_stale(
        self, min_idle_ms: int, count: int, cursor: str = RECLAIM_CURSOR_START,
    ) -> ReclaimPage:
        """Take over one page of jobs other consumers received but never acknowledged.

        Pass the returned ``next_cursor`` back in until the page is ``exhausted``.
        """
        ...


class PushRelay(Protocol):
    """Forwards push frames to connections held by other instances."""

    async def relay(
        self,
        event: str,
        data: dict[str, Any],
        *,
        target: int | None = None,
        exclude: int | None = None,
    ) -> None: ...
