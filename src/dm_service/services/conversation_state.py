"""Denormalized per-pair conversation summary shared by both send paths."""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from dm_service.application.exceptions import ConflictError, NotFoundError
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.conversation import Conversation, ordered_pair
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.enums import ConversationType

logger = logging.getLogger(__name__)


async def find_or_create(user_a: int, user_b: int, uow: UnitOfWork) -> Conversation:
    """Return the active direct conversation for the pair, creating it if needed.

    Concurrent first contact is settled by the store's uniqueness on the
    active pair: the losing insert returns nothing and we re-read the winner.
    Does not commit; the caller owns the transaction.
    """
    existing = await uow.conversations.get_active_direct(user_a, user_b)
    if existing is not None:
        return existing

    low, high = ordered_pair(user_a, user_b)
    now = datetime.now(timezone.utc)
    candidate = Conversation(
        id=uuid.uuid4(),
        participant_low=low,
        participant_high=high,
        conversation_type=ConversationType.DIRECT,
        unread_counts={str(low): 0, str(high): 0},
        created_at=now,
        updated_at=now,
    )
    created = await uow.conversations_w.create_if_absent(candidate)
    if created is not None:
        logger.info("Created conversation %s for pair (%d, %d)", created.id, low, high)
        return created

    winner = await uow.conversations.get_active_direct(user_a, user_b)
    if winner is None:
        raise ConflictError(f"Conversation for pair ({low}, {high}) could not be resolved")
    logger.debug("Lost create race for pair (%d, %d), using %s", low, high, winner.id)
    return winner


async def record_delivery(
    conversation: Conversation,
    message: Message,
    uow: UnitOfWork,
) -> Conversation:
    """Point the summary at ``message`` and bump the receiver's unread counter by one."""
    locked = await _lock(conversation.id, uow)
    counts = dict(locked.unread_counts)
    key = str(message.receiver_id)
    counts[key] = counts.get(key, 0) + 1
    await uow.conversations_w.update_summary(
        locked.id,
        last_message_id=message.id,
        last_message_at=message.created_at,
        unread_counts=counts,
    )
    return replace(
        locked,
        last_message_id=message.id,
        last_message_at=message.created_at,
        unread_counts=counts,
    )


async def record_read(
    conversation: Conversation,
    reader_id: int,
    uow: UnitOfWork,
) -> Conversation:
    """Reset the reader's unread counter; the other participant's is left as is."""
    locked = await _lock(conversation.id, uow)
    counts = dict(locked.unread_counts)
    counts[str(reader_id)] = 0
    await uow.conversations_w.update_summary(
        locked.id,
        last_message_id=locked.last_message_id,
        last_message_at=locked.last_message_at,
        unread_counts=counts,
    )
    return replace(locked, unread_counts=counts)


async def unread_total(user_id: int, uow: UnitOfWork) -> int:
    conversations = await uow.conversations.list_for_user(user_id, limit=1000)
    return sum(c.unread_for(user_id) for c in conversations)


async def _lock(conversation_id: uuid.UUID, uow: UnitOfWork) -> Conversation:
    locked = await uow.conversations_w.lock(conversation_id)
    if locked is None:
        raise NotFoundError("Conversation not found")
    return locked
