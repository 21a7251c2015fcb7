from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.infrastructure.db.mappers import auto_message as mapper
from dm_service.infrastructure.db.models.auto_message import AutoMessageModel

_M = AutoMessageModel

_DUE = (
    _M.is_queued.is_(False),
    _M.is_sent.is_(False),
    _M.retry_count < _M.max_retries,
)
_EXHAUSTED = (
    _M.is_sent.is_(False),
    _M.retry_count >= _M.max_retries,
)


class AutoMessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, auto_message_id: UUID) -> AutoMessage | None:
        result = await self._session.get(_M, auto_message_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def list_due(self, now: datetime, *, limit: int = 500) -> list[AutoMessage]:
        stmt = (
            select(_M)
            .where(_M.send_date <= now, *_DUE)
            .order_by(_M.send_date.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_failed(self) -> list[AutoMessage]:
        stmt = (
            select(_M)
            .where(*_EXHAUSTED, _M.error_message.is_not(None))
            .order_by(_M.send_date.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_pending(self, now: datetime) -> int:
        return await self._count(_M.send_date <= now, *_DUE)

    async def count_queued(self) -> int:
        return await self._count(_M.is_queued.is_(True), _M.is_sent.is_(False))

    async def count_sent(self) -> int:
        return await self._count(_M.is_sent.is_(True))

    async def count_failed(self) -> int:
        return await self._count(*_EXHAUSTED)

    async def _count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(_M).where(*criteria)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class AutoMessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, auto_message: AutoMessage) -> AutoMessage:
        model = mapper.entity_to_model(auto_message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_queued(self, auto_message_id: UUID) -> None:
        stmt = (
            update(_M)
            .where(_M.id == auto_message_id, _M.is_sent.is_(False))
            .values(is_queued=True)
        )
        await self._session.execute(stmt)

    async def mark_sent(self, auto_message_id: UUID, message_id: UUID, sent_at: datetime) -> bool:
        stmt = (
            update(_M)
            .where(_M.id == auto_message_id, _M.is_sent.is_(False))
            .values(is_sent=True, is_queued=False, sent_at=sent_at, message_id=message_id)
            .returning(_M.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def increment_retry(self, auto_message_id: UUID, error: str) -> None:
        stmt = (
            update(_M)
            .where(_M.id == auto_message_id)
            .values(retry_count=_M.retry_count + 1, error_message=error)
        )
        await self._session.execute(stmt)

    async def release(self, auto_message_id: UUID) -> None:
        stmt = (
            update(_M)
            .where(_M.id == auto_message_id, _M.is_sent.is_(False))
            .values(is_queued=False)
        )
        await self._session.execute(stmt)

    async def reset_retries(self, auto_message_id: UUID) -> None:
        stmt = (
            update(_M)
            .where(_M.id == auto_message_id)
            .values(retry_count=0, error_message=None, is_queued=False)
        )
        await self._session.execute(stmt)
