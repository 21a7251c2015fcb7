"""Admission controller: moves due drafted messages into the delivery queue."""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from dm_service.application.dto.delivery import DeliveryJob
from dm_service.application.dto.scheduler import AdmissionReport, QueueStatus, RetrySweepReport
from dm_service.application.exceptions import ValidationError
from dm_service.application.policies.validation import validate_content
from dm_service.application.ports.bus import DeliveryQueue
from dm_service.application.uow import UnitOfWork
from dm_service.config import settings
from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.domain.value_objects.enums import AutoMessageKind

logger = logging.getLogger(__name__)

QUEUE_FAILED_ERROR = "Failed to queue message"


async def queue_message(
    auto_message: AutoMessage,
    uow: UnitOfWork,
    queue: DeliveryQueue,
    now: datetime,
) -> bool:
    """Publish one record. Marks it Queued on success, records a retry otherwise."""
    error = QUEUE_FAILED_ERROR
    try:
        accepted = await queue.enqueue(DeliveryJob.from_auto_message(auto_message, now))
    except Exception as exc:
        logger.exception("Error queuing auto message %s", auto_message.id)
        accepted = False
        error = str(exc) or QUEUE_FAILED_ERROR

    if accepted:
        await uow.auto_messages_w.mark_queued(auto_message.id)
        await uow.commit()
        logger.info(
            "Auto message queued: %s (%d -> %d)",
            auto_message.id, auto_message.sender_id, auto_message.receiver_id,
        )
        return True

    await uow.auto_messages_w.increment_retry(auto_message.id, error)
    await uow.commit()
    logger.error("Failed to queue auto message %s: %s", auto_message.id, error)
    return False


async def admit_due_messages(
    uow: UnitOfWork,
    queue: DeliveryQueue,
    *,
    now: datetime | None = None,
) -> AdmissionReport:
    now = now or datetime.now(timezone.utc)
    ready = await uow.auto_messages.list_due(now)
    if not ready:
        logger.info("No ready messages found")
        return AdmissionReport(found=0, queued=0)

    logger.info("Found %d ready messages", len(ready))
    queued = 0
    for auto_message in ready:
        if await queue_message(auto_message, uow, queue, now):
            queued += 1

    logger.info("Admission completed: %d/%d messages queued", queued, len(ready))
    return AdmissionReport(found=len(ready), queued=queued)


async def retry_failed_messages(
    uow: UnitOfWork,
    queue: DeliveryQueue,
    *,
    now: datetime | None = None,
) -> RetrySweepReport:
    """Reset exhausted records and submit each of them once more."""
    now = now or datetime.now(timezone.utc)
    failed = await uow.auto_messages.list_failed()
    if not failed:
        logger.info("No failed messages to retry")
        return RetrySweepReport(found=0, resubmitted=0)

    logger.info("Found %d failed messages to retry", len(failed))
    resubmitted = 0
    for auto_message in failed:
        await uow.auto_messages_w.reset_retries(auto_message.id)
        await uow.commit()
        reset = replace(auto_message, retry_count=0, error_message=None, is_queued=False)
        if await queue_message(reset, uow, queue, now):
            resubmitted += 1

    logger.info("Retried %d/%d failed messages", resubmitted, len(failed))
    return RetrySweepReport(found=len(failed), resubmitted=resubmitted)


async def queue_status(uow: UnitOfWork, *, now: datetime | None = None) -> QueueStatus:
    now = now or datetime.now(timezone.utc)
    return QueueStatus(
        pending=await uow.auto_messages.count_pending(now),
        queued=await uow.auto_messages.count_queued(),
        sent=await uow.auto_messages.count_sent(),
        failed=await uow.auto_messages.count_failed(),
    )


async def send_test_message(
    sender_id: int,
    receiver_id: int,
    content: str,
    uow: UnitOfWork,
    queue: DeliveryQueue,
    *,
    now: datetime | None = None,
) -> tuple[AutoMessage, bool]:
    """Draft a test record due immediately and publish it straight away."""
    if sender_id == receiver_id:
        raise ValidationError("Cannot send a message to yourself")
    validate_content(content)
    now = now or datetime.now(timezone.utc)

    draft = await uow.auto_messages_w.create(
        AutoMessage(
            id=uuid.uuid4(),
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            send_date=now,
            max_retries=settings.AUTO_MESSAGE_MAX_RETRIES,
            metadata={"kind": AutoMessageKind.TEST.value, "generated_at": now.isoformat()},
            created_at=now,
            updated_at=now,
        )
    )
    await uow.commit()
    queued = await queue_message(draft, uow, queue, now)
    return draft, queued
