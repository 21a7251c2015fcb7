"""One-time script: create the delivery stream and its consumer group."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from dm_service.config import settings
from dm_service.infrastructure.bus.redis_streams import RedisStreamDeliveryQueue
from dm_service.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def create_group() -> None:
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        queue = RedisStreamDeliveryQueue(
            r, settings.DELIVERY_STREAM, settings.DELIVERY_GROUP, "bootstrap",
        )
        await queue.ensure_group()
        logger.info(
            "Consumer group '%s' ready on stream '%s'",
            settings.DELIVERY_GROUP,
            settings.DELIVERY_STREAM,
        )
    finally:
        await r.aclose()


def main() -> None:
    configure_logging()
    asyncio.run(create_group())


if __name__ == "__main__":
    main()
