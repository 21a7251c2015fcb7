from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.message import Message
from dm_service.infrastructure.db.mappers import message as mapper
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor


def _between(user_a: int, user_b: int):
    return and_(
        or_(
            and_(MessageModel.sender_id == user_a, MessageModel.receiver_id == user_b),
            and_(MessageModel.sender_id == user_b, MessageModel.receiver_id == user_a),
        ),
        MessageModel.is_deleted.is_(False),
    )


async def _by_auto_message_id(session: AsyncSession, auto_message_id: UUID) -> Message | None:
    stmt = select(MessageModel).where(MessageModel.auto_message_id == auto_message_id)
    result = await session.execute(stmt)
    model = result.scalar_one_or_none()
    return mapper.model_to_entity(model) if model else None


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        result = await self._session.get(MessageModel, message_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def list_between(
        self,
        user_a: int,
        user_b: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> tuple[list[Message], str | None]:
        """Newest-first page of the pair's visible messages and the cursor of the next page."""
        stmt = (
            select(MessageModel)
            .where(_between(user_a, user_b))
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit + 1)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at < ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
            )
        result = await self._session.execute(stmt)
        rows = [mapper.model_to_entity(m) for m in result.scalars().all()]
        if len(rows) <= limit:
            return rows, None
        page = rows[:limit]
        return page, encode_cursor(page[-1].created_at, page[-1].id)

    async def count_between(self, user_a: int, user_b: int) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(_between(user_a, user_b))
        result = await self._session.execute(stmt)
        return result.scalar_one()


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert keyed by auto_message_id. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(index_elements=["auto_message_id"])
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: another delivery of the same record won
        assert message.auto_message_id is not None
        existing = await _by_auto_message_id(self._session, message.auto_message_id)
        assert existing is not None
        return existing, False

    async def mark_read(self, message_id: UUID, read_at: datetime) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(is_read=True, read_at=read_at)
        )
        await self._session.execute(stmt)

    async def mark_read_from(self, sender_id: int, receiver_id: int, read_at: datetime) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.sender_id == sender_id,
                MessageModel.receiver_id == receiver_id,
                MessageModel.is_read.is_(False),
                MessageModel.is_deleted.is_(False),
            )
            .values(is_read=True, read_at=read_at)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def soft_delete(self, message_id: UUID, deleted_by: int, deleted_at: datetime) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(is_deleted=True, deleted_by=deleted_by, deleted_at=deleted_at)
        )
        await self._session.execute(stmt)
