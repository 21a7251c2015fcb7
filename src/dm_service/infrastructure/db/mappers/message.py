from __future__ import annotations

from dm_service.domain.entities.message import Message
from dm_service.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        sender_id=model.sender_id,
        receiver_id=model.receiver_id,
        content=model.content,
        message_type=model.message_type,
        metadata=dict(model.payload or {}),
        is_read=model.is_read,
        read_at=model.read_at,
        is_deleted=model.is_deleted,
        deleted_at=model.deleted_at,
        deleted_by=model.deleted_by,
        auto_message_id=model.auto_message_id,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict:
    """Column values for a Core insert."""
    return {
        "id": entity.id,
        "sender_id": entity.sender_id,
        "receiver_id": entity.receiver_id,
        "content": entity.content,
        "message_type": entity.message_type,
        "payload": entity.metadata,
        "is_read": entity.is_read,
        "read_at": entity.read_at,
        "is_deleted": entity.is_deleted,
        "deleted_at": entity.deleted_at,
        "deleted_by": entity.deleted_by,
        "auto_message_id": entity.auto_message_id,
        "created_at": entity.created_at,
    }
