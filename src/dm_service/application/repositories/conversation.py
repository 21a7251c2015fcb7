from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from dm_service.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_active_direct(self, user_a: int, user_b: int) -> Conversation | None:
        """Find the active direct conversation for an unordered pair."""
        ...

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]: ...


class ConversationWriter(Protocol):
    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        """Insert unless an active direct conversation exists for the pair.

        Returns the inserted conversation, or None when the insert lost a race.
        """
        ...

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        """Read a conversation holding a row lock until the transaction ends."""
        ...

    async def update_summary(
        self,
        conversation_id: UUID,
        *,
        last_message_id: UUID | None,
        last_message_at: datetime | None,
        unread_counts: dict[str, int],
    ) -> None: ...
