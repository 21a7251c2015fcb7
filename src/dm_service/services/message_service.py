from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from dm_service.application.dto.message import MessageHistory
from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from dm_service.application.policies.permissions import assert_message_access
from dm_service.application.policies.validation import validate_direct_send
from dm_service.application.ports.presence import Pusher
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.message import Message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.enums import MessageType
from dm_service.services import conversation_state

logger = logging.getLogger(__name__)

MESSAGE_RECEIVED = "message_received"
MESSAGE_READ = "message_read"


def message_received_payload(
    message: Message,
    conversation: Conversation,
    sender: User | None,
    receiver: User | None,
) -> dict[str, Any]:
    """Wire shape of the ``message_received`` event, shared by both send paths."""
    return {
        "message": {
            "id": str(message.id),
            "sender": {
                "id": message.sender_id,
                "username": sender.username if sender else None,
            },
            "receiver": {
                "id": message.receiver_id,
                "username": receiver.username if receiver else None,
            },
            "content": message.content,
            "message_type": message.message_type,
            "metadata": message.metadata,
            "created_at": message.created_at.isoformat(),
        },
        "conversation": {
            "id": str(conversation.id),
            "last_message": str(message.id),
            "last_message_at": message.created_at.isoformat(),
        },
    }


async def send_direct(
    sender_id: int,
    receiver_id: int,
    content: str,
    message_type: MessageType,
    metadata: dict[str, Any] | None,
    uow: UnitOfWork,
    presence: Pusher,
) -> tuple[Message, Conversation, bool]:
    """Interactive send path: persist, update the aggregate, push if reachable.

    Returns (message, conversation, pushed). Validation errors are raised
    before anything is written.
    """
    receiver = await uow.users.get_by_id(receiver_id)
    validate_direct_send(sender_id, receiver, content)
    sender = await uow.users.get_by_id(sender_id)

    message = Message(
        id=uuid.uuid4(),
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        message_type=message_type.value,
        metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    message = await uow.messages_w.create(message)
    conversation = await conversation_state.find_or_create(sender_id, receiver_id, uow)
    conversation = await conversation_state.record_delivery(conversation, message, uow)
    await uow.commit()

    pushed = await presence.push(
        receiver_id,
        MESSAGE_RECEIVED,
        message_received_payload(message, conversation, sender, receiver),
    )
    logger.info(
        "Message %s sent %d -> %d (push: %s)",
        message.id, sender_id, receiver_id, "sent" if pushed else "not sent",
    )
    return message, conversation, pushed


async def mark_read(
    message_id: uuid.UUID,
    reader_id: int,
    counterpart_id: int | None,
    uow: UnitOfWork,
    presence: Pusher,
) -> Message:
    """Persist the read receipt, reset the reader's unread counter, notify the sender."""
    message = await uow.messages.get_by_id(message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.receiver_id != reader_id:
        raise ForbiddenError("Only the receiver can mark a message as read")
    if counterpart_id is not None and counterpart_id != message.sender_id:
        raise ValidationError("Counterpart does not match the message sender")

    read_at = message.read_at or datetime.now(timezone.utc)
    if not message.is_read:
        await uow.messages_w.mark_read(message.id, read_at)
    conversation = await uow.conversations.get_active_direct(reader_id, message.sender_id)
    if conversation is not None:
        await conversation_state.record_read(conversation, reader_id, uow)
    await uow.commit()

    await presence.push(
        message.sender_id,
        MESSAGE_READ,
        {
            "message_id": str(message.id),
            "read_by": {"id": reader_id},
            "read_at": read_at.isoformat(),
        },
    )
    return await uow.messages.get_by_id(message_id) or message


async def soft_delete(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    message = assert_message_access(principal, await uow.messages.get_by_id(message_id))

    if not message.is_deleted:
        await uow.messages_w.soft_delete(
            message.id, principal.user_id, datetime.now(timezone.utc),
        )
        await uow.commit()
        logger.info("Message %s deleted by user %d", message.id, principal.user_id)
    return await uow.messages.get_by_id(message_id) or message


async def list_conversations(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Conversation]:
    return await uow.conversations.list_for_user(principal.user_id, limit=limit)


async def history(
    reader_id: int,
    other_id: int,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> MessageHistory:
    """One newest-first page of the pair's messages.

    Opening the history reads everything the other user sent: those messages
    are marked read and the reader's unread counter is reset.
    """
    other = await uow.users.get_by_id(other_id)
    if other is None or not other.is_active:
        raise NotFoundError("User not found or inactive")

    messages, next_cursor = await uow.messages.list_between(
        reader_id, other_id, cursor=cursor, limit=limit,
    )
    total = await uow.messages.count_between(reader_id, other_id)

    read_at = datetime.now(timezone.utc)
    marked = await uow.messages_w.mark_read_from(other_id, reader_id, read_at)
    conversation = await uow.conversations.get_active_direct(reader_id, other_id)
    if conversation is not None and (marked or conversation.unread_for(reader_id)):
        await conversation_state.record_read(conversation, reader_id, uow)
    await uow.commit()
    if marked:
        logger.info("User %d read %d messages from %d", reader_id, marked, other_id)

    page = [
        replace(m, is_read=True, read_at=read_at)
        if m.receiver_id == reader_id and not m.is_read else m
        for m in messages
    ]
    return MessageHistory(other_user=other, messages=page, total=total, next_cursor=next_cursor)
