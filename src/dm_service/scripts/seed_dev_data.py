"""Seed development data: creates the schema, a few users and a round of drafts."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert

from dm_service.infrastructure.db.base import Base
from dm_service.infrastructure.db.models import UserModel
from dm_service.infrastructure.db.session import dispose_engine, engine
from dm_service.infrastructure.db.uow import uow_scope
from dm_service.logging_config import configure_logging
from dm_service.services import planner_service

logger = logging.getLogger(__name__)

USERS = [
    (1, "alice", "alice@example.com"),
    (2, "bob", "bob@example.com"),
    (3, "carol", "carol@example.com"),
    (4, "dave", "dave@example.com"),
    (5, "erin", "erin@example.com"),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        stmt = pg_insert(UserModel).values(
            [{"id": i, "username": name, "email": email} for i, name, email in USERS]
        ).on_conflict_do_nothing(index_elements=[UserModel.id])
        await conn.execute(stmt)
    logger.info("Schema ready, %d users upserted", len(USERS))

    async with uow_scope() as uow:
        drafted = await planner_service.plan_messages(uow)
    logger.info("Seeded %d auto messages", len(drafted))

    await dispose_engine()


def main() -> None:
    configure_logging()
    asyncio.run(seed())


if __name__ == "__main__":
    main()
