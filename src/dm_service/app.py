from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dm_service.api.middleware.correlation_id import CorrelationIdMiddleware
from dm_service.api.v1.routers import health, messages, online, scheduler, ws
from dm_service.application.exceptions import AppError
from dm_service.config import settings
from dm_service.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber, RedisPushRelay
from dm_service.infrastructure.bus.redis_streams import RedisStreamDeliveryQueue
from dm_service.infrastructure.db.session import dispose_engine
from dm_service.infrastructure.db.uow import uow_scope
from dm_service.infrastructure.presence.redis_reachability import RedisReachabilitySet
from dm_service.infrastructure.ws.manager import ConnectionManager
from dm_service.logging_config import configure_logging
from dm_service.services.presence_service import PresenceRegistry
from dm_service.workers.delivery_consumer import DeliveryConsumer
from dm_service.workers.scheduler import Scheduler

logger = logging.getLogger(__name__)


async def dispatch_relayed_push(manager: ConnectionManager, envelope: dict[str, Any]) -> None:
    """Deliver a frame relayed by another instance to this instance's connections."""
    event = envelope["event"]
    data = envelope["data"]
    target = envelope.get("target")
    if target is not None:
        await manager.send_to_user(int(target), event, data)
    else:
        await manager.broadcast(event, data, exclude=envelope.get("exclude"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    instance_id = f"api-{uuid.uuid4().hex[:8]}"
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    app.state.redis = redis
    logger.info("Redis connection pool created (instance=%s)", instance_id)

    manager = ConnectionManager()
    presence = PresenceRegistry(
        manager,
        RedisReachabilitySet(redis, settings.PRESENCE_KEY),
        uow_scope,
        relay=RedisPushRelay(redis, settings.REDIS_PUBSUB_CHANNEL, origin=instance_id),
    )
    app.state.presence = presence

    async def _on_relayed(envelope: dict[str, Any]) -> None:
        await dispatch_relayed_push(manager, envelope)

    subscriber = RedisPubSubSubscriber(
        redis, settings.REDIS_PUBSUB_CHANNEL, instance_id, _on_relayed,
    )
    await subscriber.start()

    queue = RedisStreamDeliveryQueue(
        redis, settings.DELIVERY_STREAM, settings.DELIVERY_GROUP, f"{instance_id}-consumer",
    )
    app.state.scheduler = Scheduler(uow_scope, queue)
    app.state.consumer = None

    if settings.BACKGROUND_WORKERS_ENABLED:
        await queue.ensure_group()
        app.state.scheduler.start()
        app.state.consumer = DeliveryConsumer(queue, uow_scope, presence)
        app.state.consumer.start()

    yield

    if app.state.consumer is not None:
        await app.state.consumer.stop()
    await app.state.scheduler.stop()
    await subscriber.stop()
    await redis.aclose()
    await dispose_engine()
    logger.info("Redis and database pools closed")


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(
        title="Direct Message Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(messages.router)
    app.include_router(online.router)
    app.include_router(scheduler.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
