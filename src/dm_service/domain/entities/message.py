from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

DELETED_PLACEHOLDER = "[Message deleted]"


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    sender_id: int
    receiver_id: int
    content: str
    message_type: str
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    read_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None
    auto_message_id: UUID | None = None

    def involves(self, user_id: int) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def visible_content(self, viewer_id: int) -> str:
        """Content as shown to ``viewer_id``; hidden once deleted by someone else."""
        if self.is_deleted and self.deleted_by is not None and self.deleted_by != self.sender_id:
            return DELETED_PLACEHOLDER
        return self.content
