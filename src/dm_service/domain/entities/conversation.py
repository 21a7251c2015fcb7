from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from dm_service.domain.value_objects.enums import ConversationType


def ordered_pair(user_a: int, user_b: int) -> tuple[int, int]:
    """Canonical storage order for an unordered participant pair."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    participant_low: int
    participant_high: int
    created_at: datetime
    updated_at: datetime
    conversation_type: str = ConversationType.DIRECT
    last_message_id: UUID | None = None
    last_message_at: datetime | None = None
    unread_counts: dict[str, int] = field(default_factory=dict)
    is_active: bool = True

    @property
    def participants(self) -> tuple[int, int]:
        return (self.participant_low, self.participant_high)

    def unread_for(self, user_id: int) -> int:
        return self.unread_counts.get(str(user_id), 0)

    def other_participant(self, user_id: int) -> int:
        return self.participant_high if user_id == self.participant_low else self.participant_low
