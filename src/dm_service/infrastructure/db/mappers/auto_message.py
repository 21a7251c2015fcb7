from __future__ import annotations

from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.infrastructure.db.models.auto_message import AutoMessageModel


def model_to_entity(model: AutoMessageModel) -> AutoMessage:
    return AutoMessage(
        id=model.id,
        sender_id=model.sender_id,
        receiver_id=model.receiver_id,
        content=model.content,
        send_date=model.send_date,
        is_queued=model.is_queued,
        is_sent=model.is_sent,
        sent_at=model.sent_at,
        message_id=model.message_id,
        retry_count=model.retry_count,
        max_retries=model.max_retries,
        error_message=model.error_message,
        metadata=dict(model.payload or {}),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_model(entity: AutoMessage) -> AutoMessageModel:
    return AutoMessageModel(
        id=entity.id,
        sender_id=entity.sender_id,
        receiver_id=entity.receiver_id,
        content=entity.content,
        send_date=entity.send_date,
        is_queued=entity.is_queued,
        is_sent=entity.is_sent,
        sent_at=entity.sent_at,
        message_id=entity.message_id,
        retry_count=entity.retry_count,
        max_retries=entity.max_retries,
        error_message=entity.error_message,
        payload=entity.metadata,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )
