from __future__ import annotations

from dm_service.domain.entities.conversation import Conversation
from dm_service.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        participant_low=model.participant_low,
        participant_high=model.participant_high,
        conversation_type=model.conversation_type,
        last_message_id=model.last_message_id,
        last_message_at=model.last_message_at,
        unread_counts={k: int(v) for k, v in (model.unread_counts or {}).items()},
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_values(entity: Conversation) -> dict:
    return {
        "id": entity.id,
        "participant_low": entity.participant_low,
        "participant_high": entity.participant_high,
        "conversation_type": entity.conversation_type,
        "last_message_id": entity.last_message_id,
        "last_message_at": entity.last_message_at,
        "unread_counts": entity.unread_counts,
        "is_active": entity.is_active,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }
