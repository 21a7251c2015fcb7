"""Import all models so Base.metadata knows every table before create_all."""
from dm_service.infrastructure.db.models.auto_message import AutoMessageModel
from dm_service.infrastructure.db.models.conversation import ConversationModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.user import UserModel

__all__ = [
    "AutoMessageModel",
    "ConversationModel",
    "MessageModel",
    "UserModel",
]
