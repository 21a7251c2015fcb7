"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from dm_service.domain.value_objects.enums import MessageType


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # send_message | typing_start | typing_stop | mark_as_read | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # connection_success | message_received | message_sent | ... | error | pong
    data: dict[str, Any] = {}


class SendMessageData(BaseModel):
    receiver_id: int
    content: str = Field(min_length=1)
    message_type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] = {}


class TypingData(BaseModel):
    receiver_id: int


class MarkAsReadData(BaseModel):
    message_id: UUID
    sender_id: int | None = None
