from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from dm_service.application.repositories.auto_message import (
    AutoMessageReader,
    AutoMessageWriter,
)
from dm_service.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from dm_service.application.repositories.message import MessageReader, MessageWriter
from dm_service.application.repositories.user import UserReader, UserWriter


class UnitOfWork(Protocol):
    users: UserReader
    users_w: UserWriter
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter
    auto_messages: AutoMessageReader
    auto_messages_w: AutoMessageWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
