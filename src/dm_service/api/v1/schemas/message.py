from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from dm_service.api.v1.schemas.conversation import ParticipantResponse
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    receiver_id: int
    content: str = Field(min_length=1)
    message_type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] = {}


class MarkReadRequest(BaseModel):
    sender_id: int | None = None


class MessageResponse(BaseModel):
    id: UUID
    sender_id: int
    receiver_id: int
    content: str
    message_type: str
    metadata: dict[str, Any]
    is_read: bool
    read_at: datetime | None
    is_deleted: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message, viewer_id: int) -> MessageResponse:
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content=message.visible_content(viewer_id),
            message_type=message.message_type,
            metadata=message.metadata,
            is_read=message.is_read,
            read_at=message.read_at,
            is_deleted=message.is_deleted,
            created_at=message.created_at,
        )


class SendMessageResponse(BaseModel):
    message: MessageResponse
    conversation_id: UUID
    pushed: bool


class UnreadCountResponse(BaseModel):
    unread_count: int


class MessageHistoryResponse(BaseModel):
    other_user: ParticipantResponse
    messages: list[MessageResponse]
    total: int
    next_cursor: str | None = None
