"""Delivery queue on a Redis Stream with a consumer group.

Entries stay in the group's pending list until acknowledged, which gives
at-least-once delivery: a consumer that dies mid-job leaves the entry to be
reclaimed by another consumer.
"""
from __future__ import annotations

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError

from dm_service.application.dto.delivery import (
    RECLAIM_CURSOR_START,
    DeliveryJob,
    QueuedJob,
    ReclaimPage,
)

logger = logging.getLogger(__name__)

PAYLOAD_FIELD = "payload"


class RedisStreamDeliveryQueue:
    """Implements application.ports.bus.DeliveryQueue."""

    def __init__(
        self,
        redis: aioredis.Redis,
        stream: str,
        group: str,
        consumer: str,
    ) -> None:
        self._redis = redis
        self._stream = stream
        self._group = group
        self._consumer = consumer

    async def ensure_group(self) -> None:
        try:
            await self._redis.xgroup_create(
                self._stream, self._group, id="0", mkstream=True
            )
            logger.info("Created consumer group %s on %s", self._group, self._stream)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug("Consumer group %s already exists", self._group)
            else:
                raise

    async def enqueue(self, job: DeliveryJob) -> bool:
        try:
            entry_id = await self._redis.xadd(
                self._stream, {PAYLOAD_FIELD: job.model_dump_json()}
            )
        except aioredis.RedisError:
            logger.exception("Failed to publish job for %s", job.auto_message_id)
            return False
        logger.debug("Job %s published as %s", job.auto_message_id, entry_id)
        return True

    async def receive(self, count: int, block_ms: int) -> list[QueuedJob]:
        entries = await self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams={self._stream: ">"},
            count=count,
            block=block_ms,
        )
        jobs: list[QueuedJob] = []
        for _stream_name, messages in entries or []:
            jobs.extend(await self._decode_all(messages))
        return jobs

    async def ack(self, queued: QueuedJob) -> None:
        await self._redis.xack(self._stream, self._group, queued.receipt)
        await self._redis.xdel(self._stream, queued.receipt)

    async def reclaim_stale(
        self, min_idle_ms: int, count: int, cursor: str = RECLAIM_CURSOR_START,
    ) -> ReclaimPage:
        result = await self._redis.xautoclaim(
            self._stream,
            self._group,
            self._consumer,
            min_idle_time=min_idle_ms,
            start_id=cursor,
            count=count,
        )
        if not result:
            return ReclaimPage(RECLAIM_CURSOR_START, [])
        # XAUTOCLAIM replies (next_start, entries[, deleted_ids]) depending on server version
        next_cursor, messages = result[0], result[1]
        if isinstance(next_cursor, bytes):
            next_cursor = next_cursor.decode()
        jobs = await self._decode_all(messages)
        logger.debug("XAUTOCLAIM page of %d entries, next start %s", len(jobs), next_cursor)
        return ReclaimPage(next_cursor, jobs)

    async def _decode_all(self, messages: list) -> list[QueuedJob]:
        jobs: list[QueuedJob] = []
        for entry_id, fields in messages:
            if not fields:
                # Entry was deleted while pending
                await self._redis.xack(self._stream, self._group, entry_id)
                continue
            try:
                job = DeliveryJob.model_validate_json(fields[PAYLOAD_FIELD])
            except (KeyError, ValidationError):
                logger.error("Dropping malformed stream entry %s", entry_id)
                await self._redis.xack(self._stream, self._group, entry_id)
                continue
            jobs.append(QueuedJob(receipt=entry_id, job=job))
        return jobs
