from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.conversation import Conversation, ordered_pair
from dm_service.domain.value_objects.enums import ConversationType
from dm_service.infrastructure.db.mappers import conversation as mapper
from dm_service.infrastructure.db.models.conversation import (
    ACTIVE_DIRECT_WHERE,
    ConversationModel,
)


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id)
        return mapper.model_to_entity(result) if result else None

    async def get_active_direct(self, user_a: int, user_b: int) -> Conversation | None:
        low, high = ordered_pair(user_a, user_b)
        stmt = (
            select(ConversationModel)
            .where(
                ConversationModel.participant_low == low,
                ConversationModel.participant_high == high,
                ConversationModel.conversation_type == ConversationType.DIRECT,
                ConversationModel.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    ConversationModel.participant_low == user_id,
                    ConversationModel.participant_high == user_id,
                ),
                ConversationModel.is_active.is_(True),
            )
            .order_by(ConversationModel.last_message_at.desc().nullslast(), ConversationModel.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        """Insert guarded by the partial unique index on the active direct pair."""
        stmt = (
            pg_insert(ConversationModel)
            .values(**mapper.entity_to_values(conversation))
            .on_conflict_do_nothing(
                index_elements=["participant_low", "participant_high"],
                index_where=ACTIVE_DIRECT_WHERE,
            )
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return mapper.model_to_entity(row) if row is not None else None

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def update_summary(
        self,
        conversation_id: UUID,
        *,
        last_message_id: UUID | None,
        last_message_at: datetime | None,
        unread_counts: dict[str, int],
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(
                last_message_id=last_message_id,
                last_message_at=last_message_at,
                unread_counts=unread_counts,
            )
        )
        await self._session.execute(stmt)
