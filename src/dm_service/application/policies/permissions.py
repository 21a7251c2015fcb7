from __future__ import annotations

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import ForbiddenError, NotFoundError
from dm_service.domain.entities.message import Message


def assert_message_access(principal: Principal, message: Message | None) -> Message:
    """Raise if the message doesn't exist or the caller is neither sender nor receiver."""
    if message is None:
        raise NotFoundError("Message not found")

    if not message.involves(principal.user_id):
        raise ForbiddenError("Not a participant of this message")

    return message


def assert_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
