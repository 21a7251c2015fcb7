"""Delivery consumer: drains the delivery queue and materializes messages.

Each job is acknowledged only after it has been fully handled. A failed job
first has its record handed back to Drafted with the retry counted, then is
acknowledged and re-enqueued after a delay with its attempt counter bumped,
until the attempt ceiling is hit. Entries left pending by a consumer that
went away are taken over page by page on start and again every reclaim
interval.
"""
from __future__ import annotations

import asyncio
import logging
import uuid

import redis.asyncio as aioredis

from dm_service.application.dto.delivery import RECLAIM_CURSOR_START, DeliveryJob, QueuedJob
from dm_service.application.ports.bus import DeliveryQueue
from dm_service.application.ports.presence import Pusher
from dm_service.application.uow import UoWFactory
from dm_service.config import settings
from dm_service.infrastructure.bus.redis_pubsub import RedisPushRelay
from dm_service.infrastructure.bus.redis_streams import RedisStreamDeliveryQueue
from dm_service.infrastructure.db.session import dispose_engine
from dm_service.infrastructure.db.uow import uow_scope
from dm_service.infrastructure.presence.redis_reachability import RedisReachabilitySet
from dm_service.infrastructure.ws.manager import ConnectionManager
from dm_service.logging_config import configure_logging
from dm_service.services import delivery_service
from dm_service.services.delivery_service import DeliveryOutcome
from dm_service.services.presence_service import PresenceRegistry

logger = logging.getLogger(__name__)

RECEIVE_ERROR_BACKOFF_SECONDS = 5.0


class DeliveryConsumer:
    def __init__(
        self,
        queue: DeliveryQueue,
        uow_factory: UoWFactory,
        presence: Pusher,
        *,
        batch_size: int | None = None,
        block_ms: int | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        reclaim_idle_ms: int | None = None,
        reclaim_interval: float | None = None,
    ) -> None:
        self._queue = queue
        self._uow_factory = uow_factory
        self._presence = presence
        self._batch_size = batch_size or settings.CONSUMER_BATCH_SIZE
        self._block_ms = settings.CONSUMER_BLOCK_MS if block_ms is None else block_ms
        self._max_attempts = max_attempts or settings.CONSUMER_MAX_ATTEMPTS
        self._retry_delay = (
            settings.CONSUMER_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        )
        self._reclaim_idle_ms = (
            settings.CONSUMER_RECLAIM_IDLE_MS if reclaim_idle_ms is None else reclaim_idle_ms
        )
        self._reclaim_interval = (
            settings.CONSUMER_RECLAIM_INTERVAL_SECONDS
            if reclaim_interval is None else reclaim_interval
        )
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._delayed: dict[asyncio.Task[None], DeliveryJob] = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_retries(self) -> int:
        return len(self._delayed)

    def start(self) -> None:
        if self.running:
            logger.warning("Delivery consumer already running")
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._consume(), name="delivery-consumer")
        logger.info(
            "Delivery consumer started (batch=%d, max_attempts=%d, retry_delay=%.1fs)",
            self._batch_size, self._max_attempts, self._retry_delay,
        )

    async def stop(self) -> None:
        """Finish the in-flight job, then cancel delayed requeues.

        Records behind a cancelled requeue are already Drafted, so the
        admission controller picks them up again.
        """
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

        cancelled = list(self._delayed)
        for task in cancelled:
            task.cancel()
        await asyncio.gather(*cancelled, return_exceptions=True)
        self._delayed.clear()
        logger.info("Delivery consumer stopped (%d pending retries left to admission)", len(cancelled))

    async def drain_retries(self) -> None:
        """Wait until every delayed requeue has fired."""
        while self._delayed:
            await asyncio.gather(*list(self._delayed), return_exceptions=True)

    async def _consume(self) -> None:
        loop = asyncio.get_running_loop()
        next_reclaim = loop.time()
        while not self._stop.is_set():
            if loop.time() >= next_reclaim:
                await self._reclaim()
                next_reclaim = loop.time() + self._reclaim_interval

            try:
                batch = await self._queue.receive(self._batch_size, self._block_ms)
            except Exception:
                logger.exception(
                    "Delivery queue receive failed, retrying in %.0fs",
                    RECEIVE_ERROR_BACKOFF_SECONDS,
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=RECEIVE_ERROR_BACKOFF_SECONDS)
                except TimeoutError:
                    pass
                continue

            for queued in batch:
                if self._stop.is_set():
                    # Left unacknowledged; reclaimed once it has been idle long enough
                    break
                await self.handle(queued)

    async def _reclaim(self) -> int:
        """Take over every stale pending entry, one page at a time."""
        cursor = RECLAIM_CURSOR_START
        handled = 0
        while not self._stop.is_set():
            try:
                page = await self._queue.reclaim_stale(
                    self._reclaim_idle_ms, self._batch_size, cursor,
                )
            except Exception:
                logger.exception("Failed to reclaim stale delivery jobs")
                break

            for queued in page.jobs:
                if self._stop.is_set():
                    break
                await self.handle(queued)
                handled += 1

            if page.exhausted:
                break
            cursor = page.next_cursor

        if handled:
            logger.info("Reclaimed %d stale delivery jobs", handled)
        return handled

    async def handle(self, queued: QueuedJob) -> DeliveryOutcome | None:
        """Process one job and acknowledge it. Returns None on failure."""
        job = queued.job
        logger.info(
            "Processing delivery job %s (attempt %d)", job.auto_message_id, job.attempt + 1,
        )
        try:
            async with self._uow_factory() as uow:
                outcome = await delivery_service.process_job(job, uow, self._presence)
        except Exception as exc:
            logger.exception("Error processing delivery job %s", job.auto_message_id)
            await self._on_failure(queued, exc)
            return None

        await self._ack(queued)
        return outcome

    async def _on_failure(self, queued: QueuedJob, exc: Exception) -> None:
        job = queued.job
        try:
            async with self._uow_factory() as uow:
                await delivery_service.record_failure(
                    job.auto_message_id, str(exc) or type(exc).__name__, uow,
                )
        except Exception:
            # Entry stays pending and comes back through reclaim
            logger.exception("Failed to record retry for %s", job.auto_message_id)
            return

        await self._ack(queued)

        if job.attempt + 1 < self._max_attempts:
            self._schedule_requeue(job.next_attempt())
            return

        logger.error(
            "Delivery job %s failed after %d attempts", job.auto_message_id, job.attempt + 1,
        )

    def _schedule_requeue(self, job: DeliveryJob) -> None:
        task = asyncio.create_task(self._requeue_later(job))
        self._delayed[task] = job
        task.add_done_callback(lambda t: self._delayed.pop(t, None))
        logger.info(
            "Delivery job %s requeued in %.1fs (attempt %d)",
            job.auto_message_id, self._retry_delay, job.attempt + 1,
        )

    async def _requeue_later(self, job: DeliveryJob) -> None:
        await asyncio.sleep(self._retry_delay)
        try:
            async with self._uow_factory() as uow:
                await delivery_service.requeue(job, uow, self._queue)
        except Exception:
            logger.exception("Requeue of %s failed; left to admission", job.auto_message_id)

    async def _ack(self, queued: QueuedJob) -> None:
        try:
            await self._queue.ack(queued)
        except Exception:
            logger.exception("Failed to acknowledge delivery job %s", queued.job.auto_message_id)


async def run_delivery_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    consumer_name = f"consumer-{uuid.uuid4().hex[:8]}"
    queue = RedisStreamDeliveryQueue(
        redis, settings.DELIVERY_STREAM, settings.DELIVERY_GROUP, consumer_name,
    )
    await queue.ensure_group()

    # Standalone process holds no sockets; pushes go to the API instances via the relay
    presence = PresenceRegistry(
        ConnectionManager(),
        RedisReachabilitySet(redis, settings.PRESENCE_KEY),
        uow_scope,
        relay=RedisPushRelay(redis, settings.REDIS_PUBSUB_CHANNEL, origin=consumer_name),
    )
    consumer = DeliveryConsumer(queue, uow_scope, presence)
    consumer.start()

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()
        await dispose_engine()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_delivery_consumer())


if __name__ == "__main__":
    main()
