"""Delivery job payload carried by the delivery queue."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.domain.value_objects.enums import MessageType


class DeliveryJob(BaseModel):
    auto_message_id: UUID
    sender_id: int
    receiver_id: int
    content: str
    message_type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] = {}
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Consumer-side redelivery counter, independent of AutoMessage.retry_count
    attempt: int = 0

    @classmethod
    def from_auto_message(cls, auto_message: AutoMessage, now: datetime) -> DeliveryJob:
        return cls(
            auto_message_id=auto_message.id,
            sender_id=auto_message.sender_id,
            receiver_id=auto_message.receiver_id,
            content=auto_message.content,
            metadata=auto_message.metadata,
            enqueued_at=now,
        )

    def next_attempt(self) -> DeliveryJob:
        return self.model_copy(update={"attempt": self.attempt + 1})


class QueuedJob:
    """A job as handed out by the queue, with the broker handle needed to ack it."""

    __slots__ = ("receipt", "job")

    def __init__(self, receipt: str, job: DeliveryJob) -> None:
        self.receipt = receipt
        self.job = job


# Start of a pending-entry scan; a scan that returns it as the next cursor is complete
RECLAIM_CURSOR_START = "0-0"


class ReclaimPage:
    """One page of stale jobs taken over from other consumers."""

    __slots__ = ("next_cursor", "jobs")

    def __init__(self, next_cursor: str, jobs: list[QueuedJob]) -> None:
        self.next_cursor = next_cursor
        self.jobs = jobs

    @property
    def exhausted(self) -> bool:
        return self.next_cursor == RECLAIM_CURSOR_START
