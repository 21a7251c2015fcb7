"""Periodic planner and admission tasks, each behind its own single-flight guard."""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol
from zoneinfo import ZoneInfo

import redis.asyncio as aioredis

from dm_service.application.dto.scheduler import AdmissionReport, QueueStatus, RetrySweepReport
from dm_service.application.ports.bus import DeliveryQueue
from dm_service.application.ports.clock import Clock, UtcClock
from dm_service.application.uow import UoWFactory
from dm_service.config import settings
from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.infrastructure.bus.redis_streams import RedisStreamDeliveryQueue
from dm_service.infrastructure.db.session import dispose_engine
from dm_service.infrastructure.db.uow import uow_scope
from dm_service.logging_config import configure_logging
from dm_service.services import admission_service, planner_service

logger = logging.getLogger(__name__)


class SingleFlightGuard:
    """Non-blocking run-state flag: a second acquire while held fails."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def try_acquire(self) -> bool:
        # No await between check and set, so this is atomic on the event loop
        if self._running:
            return False
        self._running = True
        return True

    def release(self) -> None:
        self._running = False

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield whether the guard was acquired; release unconditionally on exit."""
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()


class GuardedJob:
    def __init__(self, name: str, run: Callable[[], Awaitable[Any]]) -> None:
        self.name = name
        self.guard = SingleFlightGuard(name)
        self._run = run

    async def trigger(self) -> tuple[bool, Any]:
        """Run once unless a run is in flight. Returns (ran, result)."""
        async with self.guard.hold() as acquired:
            if not acquired:
                logger.warning("%s is already running, skipping", self.name)
                return False, None
            started = asyncio.get_running_loop().time()
            result = await self._run()
            elapsed_ms = (asyncio.get_running_loop().time() - started) * 1000
            logger.info("%s completed in %.0fms", self.name, elapsed_ms)
            return True, result


class Schedule(Protocol):
    def next_delay(self, now: datetime) -> float: ...


class IntervalSchedule:
    def __init__(self, seconds: float) -> None:
        self._seconds = seconds

    def next_delay(self, now: datetime) -> float:
        return self._seconds


class DailySchedule:
    """Fires once a day at ``hour``:00 in ``tz``."""

    def __init__(self, hour: int, tz: ZoneInfo) -> None:
        self._hour = hour
        self._tz = tz

    def next_run(self, now: datetime) -> datetime:
        local = now.astimezone(self._tz)
        candidate = local.replace(hour=self._hour, minute=0, second=0, microsecond=0)
        if candidate <= local:
            candidate = (candidate + timedelta(days=1)).replace(hour=self._hour)
        return candidate

    def next_delay(self, now: datetime) -> float:
        return max((self.next_run(now) - now).total_seconds(), 0.0)


class PeriodicTask:
    """Loop that triggers a guarded job on a schedule until stopped.

    Stop lets an in-flight run finish; it never cancels a run midway.
    """

    def __init__(self, job: GuardedJob, schedule: Schedule, clock: Clock) -> None:
        self._job = job
        self._schedule = schedule
        self._clock = clock
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name=f"periodic-{self._job.name}")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        while not self._stop.is_set():
            delay = self._schedule.next_delay(self._clock.now())
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
                break
            except TimeoutError:
                pass
            try:
                await self._job.trigger()
            except Exception:
                logger.exception("%s run failed", self._job.name)


class Scheduler:
    """Owns the planner and admission jobs plus the operational entry points."""

    def __init__(
        self,
        uow_factory: UoWFactory,
        queue: DeliveryQueue,
        *,
        clock: Clock | None = None,
        tz: ZoneInfo | None = None,
        planner_hour: int | None = None,
        admission_interval: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._queue = queue
        self._clock = clock or UtcClock()
        self._tz = tz or ZoneInfo(settings.SCHEDULER_TIMEZONE)
        self.planning = GuardedJob("message-planning", self._plan)
        self.admission = GuardedJob("queue-management", self._admit)
        self._tasks = [
            PeriodicTask(
                self.planning,
                DailySchedule(
                    settings.PLANNER_HOUR if planner_hour is None else planner_hour, self._tz,
                ),
                self._clock,
            ),
            PeriodicTask(
                self.admission,
                IntervalSchedule(admission_interval or settings.ADMISSION_INTERVAL_SECONDS),
                self._clock,
            ),
        ]
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            logger.warning("Scheduler already started")
            return
        for task in self._tasks:
            task.start()
        self._started = True
        logger.info(
            "Scheduler started: planning daily at %02d:00 %s, admission every %.0fs",
            settings.PLANNER_HOUR, self._tz.key, settings.ADMISSION_INTERVAL_SECONDS,
        )

    async def stop(self) -> None:
        if not self._started:
            return
        await asyncio.gather(*(task.stop() for task in self._tasks))
        self._started = False
        logger.info("Scheduler stopped")

    async def trigger_planning(self) -> list[AutoMessage] | None:
        ran, drafted = await self.planning.trigger()
        return drafted if ran else None

    async def trigger_admission(self) -> AdmissionReport | None:
        ran, report = await self.admission.trigger()
        return report if ran else None

    async def retry_failed(self) -> RetrySweepReport:
        async with self._uow_factory() as uow:
            return await admission_service.retry_failed_messages(
                uow, self._queue, now=self._clock.now(),
            )

    async def queue_status(self) -> QueueStatus:
        async with self._uow_factory() as uow:
            return await admission_service.queue_status(uow, now=self._clock.now())

    async def send_test_message(
        self, sender_id: int, receiver_id: int, content: str,
    ) -> tuple[AutoMessage, bool]:
        async with self._uow_factory() as uow:
            return await admission_service.send_test_message(
                sender_id, receiver_id, content, uow, self._queue, now=self._clock.now(),
            )

    def status(self) -> dict[str, Any]:
        return {
            "is_started": self._started,
            "message_planning": {"is_running": self.planning.guard.running},
            "queue_management": {"is_running": self.admission.guard.running},
        }

    async def _plan(self) -> list[AutoMessage]:
        async with self._uow_factory() as uow:
            return await planner_service.plan_messages(uow, now=self._clock.now(), tz=self._tz)

    async def _admit(self) -> AdmissionReport:
        async with self._uow_factory() as uow:
            return await admission_service.admit_due_messages(
                uow, self._queue, now=self._clock.now(),
            )


async def run_scheduler() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    queue = RedisStreamDeliveryQueue(
        redis,
        settings.DELIVERY_STREAM,
        settings.DELIVERY_GROUP,
        f"scheduler-{uuid.uuid4().hex[:8]}",
    )
    await queue.ensure_group()
    scheduler = Scheduler(uow_scope, queue)
    scheduler.start()

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await scheduler.stop()
        await redis.aclose()
        await dispose_engine()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_scheduler())


if __name__ == "__main__":
    main()
