from __future__ import annotations

from dm_service.application.exceptions import ValidationError
from dm_service.config import settings
from dm_service.domain.entities.user import User


def validate_content(content: str) -> str:
    if not content or not content.strip():
        raise ValidationError("Message content is required")
    if len(content) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message content cannot exceed {settings.MESSAGE_MAX_LENGTH} characters"
        )
    return content


def validate_direct_send(sender_id: int, receiver: User | None, content: str) -> User:
    """Check a live send before anything is written."""
    if receiver is None or not receiver.is_active:
        raise ValidationError("Receiver not found or inactive")
    if receiver.id == sender_id:
        raise ValidationError("Cannot send a message to yourself")
    validate_content(content)
    return receiver
