"""Redis Pub/Sub push relay: publish side plus the subscriber background task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from dm_service.infrastructure.bus.serializer import deserialize_push, serialize_push

logger = logging.getLogger(__name__)


class RedisPushRelay:
    """Implements application.ports.bus.PushRelay."""

    def __init__(self, redis: aioredis.Redis, channel: str, origin: str) -> None:
        self._redis = redis
        self._channel = channel
        self._origin = origin

    @property
    def origin(self) -> str:
        return self._origin

    async def relay(
        self,
        event: str,
        data: dict[str, Any],
        *,
        target: int | None = None,
        exclude: int | None = None,
    ) -> None:
        raw = serialize_push(self._origin, event, data, target=target, exclude=exclude)
        await self._redis.publish(self._channel, raw)


OnPushCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to the relay channel and dispatches frames."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        origin: str,
        callback: OnPushCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._origin = origin
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-push-relay-subscriber")
        logger.info("Push relay subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Push relay subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    envelope = deserialize_push(message["data"])
                    if envelope["origin"] == self._origin:
                        continue
                    await self._callback(envelope)
                except Exception:
                    logger.exception("Error processing relayed push")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
