from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.entities.message import Message
from dm_service.domain.entities.user import User


@dataclass(frozen=True, slots=True)
class MessageHistory:
    other_user: User
    messages: list[Message]
    total: int
    next_cursor: str | None
