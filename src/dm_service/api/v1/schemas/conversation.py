from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ParticipantResponse(BaseModel):
    id: int
    username: str | None = None
    last_seen: datetime | None = None


class ConversationResponse(BaseModel):
    id: UUID
    other_participant: ParticipantResponse
    last_message_id: UUID | None
    last_message_at: datetime | None
    unread_count: int
    created_at: datetime
    updated_at: datetime
