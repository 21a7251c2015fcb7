from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from dm_service.domain.value_objects.enums import AutoMessageState


@dataclass(frozen=True, slots=True)
class AutoMessage:
    """A drafted message waiting for its send time."""

    id: UUID
    sender_id: int
    receiver_id: int
    content: str
    send_date: datetime
    created_at: datetime
    updated_at: datetime
    is_queued: bool = False
    is_sent: bool = False
    sent_at: datetime | None = None
    message_id: UUID | None = None
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_reached_max_retries(self) -> bool:
        return self.retry_count >= self.max_retries

    @property
    def state(self) -> AutoMessageState:
        if self.is_sent:
            return AutoMessageState.SENT
        if self.is_queued:
            return AutoMessageState.QUEUED
        if self.has_reached_max_retries:
            return AutoMessageState.FAILED
        return AutoMessageState.DRAFTED

    def is_due(self, now: datetime) -> bool:
        return (
            self.send_date <= now
            and not self.is_queued
            and not self.is_sent
            and not self.has_reached_max_retries
        )
