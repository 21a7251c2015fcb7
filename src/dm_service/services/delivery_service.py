"""Idempotent materialization of delivery jobs into persisted messages."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import StrEnum

from dm_service.application.dto.delivery import DeliveryJob
from dm_service.application.ports.bus import DeliveryQueue
from dm_service.application.ports.presence import Pusher
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.enums import AutoMessageState
from dm_service.services import conversation_state
from dm_service.services.message_service import MESSAGE_RECEIVED, message_received_payload

logger = logging.getLogger(__name__)


class DeliveryOutcome(StrEnum):
    DELIVERED = "delivered"
    DUPLICATE = "duplicate"
    MISSING = "missing"


async def process_job(
    job: DeliveryJob,
    uow: UnitOfWork,
    presence: Pusher,
    *,
    now: datetime | None = None,
) -> DeliveryOutcome:
    """Turn a job into a Message exactly once per drafted record.

    Raises on persistence errors; the caller owns retry bookkeeping. A job
    whose record is already Sent is a no-op.
    """
    now = now or datetime.now(timezone.utc)

    auto_message = await uow.auto_messages.get_by_id(job.auto_message_id)
    if auto_message is None:
        logger.error("AutoMessage not found: %s", job.auto_message_id)
        return DeliveryOutcome.MISSING
    if auto_message.is_sent:
        logger.info("Message already sent: %s", auto_message.id)
        return DeliveryOutcome.DUPLICATE

    candidate = Message(
        id=uuid.uuid4(),
        sender_id=auto_message.sender_id,
        receiver_id=auto_message.receiver_id,
        content=auto_message.content,
        message_type=job.message_type.value,
        metadata=dict(job.metadata),
        auto_message_id=auto_message.id,
        created_at=now,
    )
    message, created = await uow.messages_w.create_if_not_exists(candidate)
    conversation = await conversation_state.find_or_create(
        auto_message.sender_id, auto_message.receiver_id, uow,
    )
    if created:
        conversation = await conversation_state.record_delivery(conversation, message, uow)
    await uow.auto_messages_w.mark_sent(auto_message.id, message.id, now)
    await uow.commit()

    if not created:
        logger.info("Concurrent duplicate delivery for %s resolved to %s", auto_message.id, message.id)
        return DeliveryOutcome.DUPLICATE

    try:
        sender = await uow.users.get_by_id(auto_message.sender_id)
        receiver = await uow.users.get_by_id(auto_message.receiver_id)
        pushed = await presence.push(
            auto_message.receiver_id,
            MESSAGE_RECEIVED,
            message_received_payload(message, conversation, sender, receiver),
        )
    except Exception:
        logger.warning("Push for message %s failed", message.id, exc_info=True)
        pushed = False

    logger.info(
        "Message processed: %d -> %d (%s) - push: %s",
        auto_message.sender_id, auto_message.receiver_id, message.id,
        "sent" if pushed else "not sent",
    )
    return DeliveryOutcome.DELIVERED


async def record_failure(auto_message_id: uuid.UUID, error: str, uow: UnitOfWork) -> None:
    """Count a failed attempt and hand the record back to Drafted.

    Committed before the broker entry is acknowledged, so an exit during
    the retry delay leaves the record visible to admission.
    """
    await uow.auto_messages_w.increment_retry(auto_message_id, error)
    await uow.auto_messages_w.release(auto_message_id)
    await uow.commit()


async def requeue(job: DeliveryJob, uow: UnitOfWork, queue: DeliveryQueue) -> bool:
    """Publish a retry unless the record moved on while it waited."""
    record = await uow.auto_messages.get_by_id(job.auto_message_id)
    if record is None or record.state is not AutoMessageState.DRAFTED:
        logger.info(
            "Skipping requeue of %s (%s)",
            job.auto_message_id, record.state.value if record else "missing",
        )
        return False

    if not await queue.enqueue(job):
        logger.error("Requeue of %s rejected by broker; left to admission", job.auto_message_id)
        return False
    await uow.auto_messages_w.mark_queued(record.id)
    await uow.commit()
    return True
