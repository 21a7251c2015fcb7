"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any
from uuid import UUID

import pytest

from dm_service.application.dto.delivery import (
    RECLAIM_CURSOR_START,
    DeliveryJob,
    QueuedJob,
    ReclaimPage,
)
from dm_service.application.dto.principal import Principal
from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.domain.entities.conversation import Conversation, ordered_pair
from dm_service.domain.entities.message import Message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.enums import ConversationType, MessageType
from dm_service.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def user_principal() -> Principal:
    return Principal(user_id=1, roles=[])


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(user_id=99, roles=["admin"])


def make_user(user_id: int, username: str | None = None, *, is_active: bool = True) -> User:
    return User(
        id=user_id,
        username=username or f"user{user_id}",
        email=f"user{user_id}@example.com",
        is_active=is_active,
        last_seen=None,
    )


def make_message(
    *,
    sender_id: int = 1,
    receiver_id: int = 2,
    content: str = "hello",
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        message_type=MessageType.TEXT,
        created_at=created_at or NOW,
    )


def make_auto_message(
    *,
    sender_id: int = 1,
    receiver_id: int = 2,
    content: str = "Hello! How are you?",
    send_date: datetime | None = None,
    retry_count: int = 0,
    max_retries: int = 3,
    is_queued: bool = False,
    is_sent: bool = False,
    error_message: str | None = None,
) -> AutoMessage:
    return AutoMessage(
        id=uuid.uuid4(),
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        send_date=send_date or NOW - timedelta(minutes=1),
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
        is_queued=is_queued,
        is_sent=is_sent,
        retry_count=retry_count,
        max_retries=max_retries,
        error_message=error_message,
        metadata={"kind": "auto"},
    )


@dataclass
class FakeDatabase:
    """Rows shared by every FakeUoW opened on it, like one Postgres database."""

    users: dict[int, User] = field(default_factory=dict)
    conversations: dict[UUID, Conversation] = field(default_factory=dict)
    messages: dict[UUID, Message] = field(default_factory=dict)
    auto_messages: dict[UUID, AutoMessage] = field(default_factory=dict)
    row_locks: dict[UUID, asyncio.Lock] = field(default_factory=dict)
    # Number of upcoming message inserts that raise
    fail_message_inserts: int = 0

    def add_users(self, *users: User) -> None:
        for u in users:
            self.users[u.id] = u


@dataclass
class FakeUserRepo:
    _db: FakeDatabase

    async def get_by_id(self, user_id: int) -> User | None:
        return self._db.users.get(user_id)

    async def list_active(self) -> list[User]:
        return sorted((u for u in self._db.users.values() if u.is_active), key=lambda u: u.id)

    async def list_by_ids(self, user_ids: list[int]) -> list[User]:
        return [self._db.users[i] for i in sorted(set(user_ids)) if i in self._db.users]

    async def touch_last_seen(self, user_id: int, ts: datetime) -> None:
        if user_id in self._db.users:
            self._db.users[user_id] = replace(self._db.users[user_id], last_seen=ts)


@dataclass
class FakeConversationRepo:
    _db: FakeDatabase
    _uow: FakeUoW

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._db.conversations.get(conversation_id)

    async def get_active_direct(self, user_a: int, user_b: int) -> Conversation | None:
        # Yield so concurrent callers interleave between lookup and insert
        await asyncio.sleep(0)
        pair = ordered_pair(user_a, user_b)
        for c in self._db.conversations.values():
            if c.is_active and c.participants == pair:
                return c
        return None

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        mine = [
            c for c in self._db.conversations.values()
            if c.is_active and user_id in c.participants
        ]
        mine.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
        return mine[:limit]

    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        for c in self._db.conversations.values():
            if (
                c.is_active
                and c.conversation_type == ConversationType.DIRECT
                and c.participants == conversation.participants
            ):
                return None
        self._db.conversations[conversation.id] = conversation
        return conversation

    async def lock(self, conversation_id: UUID) -> Conversation | None:
        if conversation_id not in self._db.conversations:
            return None
        row_lock = self._db.row_locks.setdefault(conversation_id, asyncio.Lock())
        if row_lock not in self._uow.held_locks:
            await row_lock.acquire()
            self._uow.held_locks.append(row_lock)
        return self._db.conversations[conversation_id]

    async def update_summary(
        self,
        conversation_id: UUID,
        *,
        last_message_id: UUID | None,
        last_message_at: datetime | None,
        unread_counts: dict[str, int],
    ) -> None:
        await asyncio.sleep(0)
        current = self._db.conversations[conversation_id]
        self._db.conversations[conversation_id] = replace(
            current,
            last_message_id=last_message_id,
            last_message_at=last_message_at,
            unread_counts=dict(unread_counts),
        )


@dataclass
class FakeMessageRepo:
    _db: FakeDatabase

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return self._db.messages.get(message_id)

    def _by_auto_message_id(self, auto_message_id: UUID) -> Message | None:
        for m in self._db.messages.values():
            if m.auto_message_id == auto_message_id:
                return m
        return None

    def _between(self, user_a: int, user_b: int) -> list[Message]:
        pair = {(user_a, user_b), (user_b, user_a)}
        visible = [
            m for m in self._db.messages.values()
            if (m.sender_id, m.receiver_id) in pair and not m.is_deleted
        ]
        return sorted(visible, key=lambda m: (m.created_at, m.id), reverse=True)

    async def list_between(
        self,
        user_a: int,
        user_b: int,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> tuple[list[Message], str | None]:
        rows = self._between(user_a, user_b)
        if cursor:
            after = decode_cursor(cursor)
            rows = [m for m in rows if (m.created_at, m.id) < after]
        if len(rows) <= limit:
            return rows, None
        page = rows[:limit]
        return page, encode_cursor(page[-1].created_at, page[-1].id)

    async def count_between(self, user_a: int, user_b: int) -> int:
        return len(self._between(user_a, user_b))

    async def create(self, message: Message) -> Message:
        self._db.messages[message.id] = message
        return message

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        if self._db.fail_message_inserts > 0:
            self._db.fail_message_inserts -= 1
            raise ConnectionError("message store unavailable")
        existing = self._by_auto_message_id(message.auto_message_id)
        if existing is not None:
            return existing, False
        self._db.messages[message.id] = message
        return message, True

    async def mark_read(self, message_id: UUID, read_at: datetime) -> None:
        current = self._db.messages[message_id]
        self._db.messages[message_id] = replace(current, is_read=True, read_at=read_at)

    async def mark_read_from(self, sender_id: int, receiver_id: int, read_at: datetime) -> int:
        unread = [
            m for m in self._db.messages.values()
            if m.sender_id == sender_id and m.receiver_id == receiver_id
            and not m.is_read and not m.is_deleted
        ]
        for m in unread:
            self._db.messages[m.id] = replace(m, is_read=True, read_at=read_at)
        return len(unread)

    async def soft_delete(self, message_id: UUID, deleted_by: int, deleted_at: datetime) -> None:
        current = self._db.messages[message_id]
        self._db.messages[message_id] = replace(
            current, is_deleted=True, deleted_by=deleted_by, deleted_at=deleted_at,
        )


@dataclass
class FakeAutoMessageRepo:
    _db: FakeDatabase

    def _set(self, auto_message_id: UUID, **changes: Any) -> None:
        current = self._db.auto_messages[auto_message_id]
        self._db.auto_messages[auto_message_id] = replace(current, **changes)

    async def get_by_id(self, auto_message_id: UUID) -> AutoMessage | None:
        return self._db.auto_messages.get(auto_message_id)

    async def list_due(self, now: datetime, *, limit: int = 500) -> list[AutoMessage]:
        due = [a for a in self._db.auto_messages.values() if a.is_due(now)]
        return sorted(due, key=lambda a: a.send_date)[:limit]

    async def list_failed(self) -> list[AutoMessage]:
        return [
            a for a in self._db.auto_messages.values()
            if not a.is_sent and a.has_reached_max_retries and a.error_message is not None
        ]

    async def count_pending(self, now: datetime) -> int:
        return len(await self.list_due(now))

    async def count_queued(self) -> int:
        return sum(1 for a in self._db.auto_messages.values() if a.is_queued and not a.is_sent)

    async def count_sent(self) -> int:
        return sum(1 for a in self._db.auto_messages.values() if a.is_sent)

    async def count_failed(self) -> int:
        return sum(
            1 for a in self._db.auto_messages.values()
            if not a.is_sent and a.has_reached_max_retries
        )

    async def create(self, auto_message: AutoMessage) -> AutoMessage:
        self._db.auto_messages[auto_message.id] = auto_message
        return auto_message

    async def mark_queued(self, auto_message_id: UUID) -> None:
        if not self._db.auto_messages[auto_message_id].is_sent:
            self._set(auto_message_id, is_queued=True)

    async def mark_sent(self, auto_message_id: UUID, message_id: UUID, sent_at: datetime) -> bool:
        if self._db.auto_messages[auto_message_id].is_sent:
            return False
        self._set(
            auto_message_id, is_sent=True, is_queued=False, sent_at=sent_at, message_id=message_id,
        )
        return True

    async def increment_retry(self, auto_message_id: UUID, error: str) -> None:
        current = self._db.auto_messages[auto_message_id]
        self._set(auto_message_id, retry_count=current.retry_count + 1, error_message=error)

    async def release(self, auto_message_id: UUID) -> None:
        if not self._db.auto_messages[auto_message_id].is_sent:
            self._set(auto_message_id, is_queued=False)

    async def reset_retries(self, auto_message_id: UUID) -> None:
        self._set(auto_message_id, retry_count=0, error_message=None, is_queued=False)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Writes apply immediately; row locks last until commit."""

    db: FakeDatabase = field(default_factory=FakeDatabase)
    commits: int = 0
    rollbacks: int = 0
    held_locks: list[asyncio.Lock] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.users = FakeUserRepo(self.db)
        self.users_w = self.users
        self.conversations = FakeConversationRepo(self.db, self)
        self.conversations_w = self.conversations
        self.messages = FakeMessageRepo(self.db)
        self.messages_w = self.messages
        self.auto_messages = FakeAutoMessageRepo(self.db)
        self.auto_messages_w = self.auto_messages

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1
        self._release_locks()

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._release_locks()

    def _release_locks(self) -> None:
        while self.held_locks:
            self.held_locks.pop().release()

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
        self._release_locks()


def uow_factory_for(db: FakeDatabase):
    """A UoWFactory opening a fresh FakeUoW over ``db`` each call."""
    return lambda: FakeUoW(db)


@dataclass
class FakeDeliveryQueue:
    accept: bool = True
    published: list[DeliveryJob] = field(default_factory=list)
    pending: list[QueuedJob] = field(default_factory=list)
    stale: list[QueuedJob] = field(default_factory=list)
    acked: list[str] = field(default_factory=list)
    reclaim_cursors: list[str] = field(default_factory=list)

    async def enqueue(self, job: DeliveryJob) -> bool:
        if not self.accept:
            return False
        self.published.append(job)
        self.pending.append(QueuedJob(receipt=f"{len(self.published)}-0", job=job))
        return True

    async def receive(self, count: int, block_ms: int) -> list[QueuedJob]:
        batch, self.pending = self.pending[:count], self.pending[count:]
        if not batch:
            await asyncio.sleep(min(block_ms, 10) / 1000)
        return batch

    async def ack(self, queued: QueuedJob) -> None:
        self.acked.append(queued.receipt)

    async def reclaim_stale(
        self, min_idle_ms: int, count: int, cursor: str = RECLAIM_CURSOR_START,
    ) -> ReclaimPage:
        self.reclaim_cursors.append(cursor)
        batch, self.stale = self.stale[:count], self.stale[count:]
        next_cursor = batch[-1].receipt if self.stale else RECLAIM_CURSOR_START
        return ReclaimPage(next_cursor, batch)


@dataclass
class FakeReachabilitySet:
    """Shared connection counts; ``online`` mirrors the users with a non-zero count."""

    online: set[int] = field(default_factory=set)
    connections: dict[int, int] = field(default_factory=dict)
    fail: bool = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("presence store unavailable")

    async def add(self, user_id: int) -> None:
        self._check()
        self.connections[user_id] = self.connections.get(user_id, 0) + 1
        self.online.add(user_id)

    async def remove(self, user_id: int) -> bool:
        self._check()
        left = self.connections.get(user_id, 0) - 1
        if left > 0:
            self.connections[user_id] = left
            return False
        self.connections.pop(user_id, None)
        self.online.discard(user_id)
        return True

    async def contains(self, user_id: int) -> bool:
        self._check()
        return user_id in self.online

    async def count(self) -> int:
        self._check()
        return len(self.online)

    async def members(self) -> list[int]:
        self._check()
        return sorted(self.online)


@dataclass
class FakeConnections:
    """LocalConnections that records what was sent instead of writing to sockets."""

    handles: dict[int, list[Any]] = field(default_factory=dict)
    sent: list[tuple[int, str, dict[str, Any]]] = field(default_factory=list)
    broadcasts: list[tuple[str, dict[str, Any], int | None]] = field(default_factory=list)

    def bind(self, user_id: int, connection: Any) -> None:
        self.handles.setdefault(user_id, []).append(connection)

    def release(self, user_id: int, connection: Any) -> bool:
        conns = self.handles.get(user_id, [])
        if connection in conns:
            conns.remove(connection)
        if not conns:
            self.handles.pop(user_id, None)
            return True
        return False

    def get(self, user_id: int) -> Any | None:
        conns = self.handles.get(user_id)
        return conns[-1] if conns else None

    async def send_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> bool:
        if user_id not in self.handles:
            return False
        self.sent.append((user_id, event, data))
        return True

    async def broadcast(
        self, event: str, data: dict[str, Any], *, exclude: int | None = None,
    ) -> None:
        self.broadcasts.append((event, data, exclude))


@dataclass
class FakeRelay:
    relayed: list[dict[str, Any]] = field(default_factory=list)
    fail: bool = False

    async def relay(
        self,
        event: str,
        data: dict[str, Any],
        *,
        target: int | None = None,
        exclude: int | None = None,
    ) -> None:
        if self.fail:
            raise ConnectionError("relay unavailable")
        self.relayed.append({"event": event, "data": data, "target": target, "exclude": exclude})


@dataclass
class FakePusher:
    """Pusher that treats ``reachable`` users as online and records every push."""

    reachable: set[int] = field(default_factory=set)
    pushes: list[tuple[int, str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def push(self, user_id: int, event: str, data: dict[str, Any]) -> bool:
        if self.fail:
            raise ConnectionError("socket write failed")
        self.pushes.append((user_id, event, data))
        return user_id in self.reachable


@dataclass
class FakeClock:
    current: datetime = NOW

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def db() -> FakeDatabase:
    fake = FakeDatabase()
    fake.add_users(make_user(1, "alice"), make_user(2, "bob"), make_user(3, "carol"))
    return fake


@pytest.fixture
def uow(db: FakeDatabase) -> FakeUoW:
    return FakeUoW(db)
