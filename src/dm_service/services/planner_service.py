"""Planner: pairs active users and drafts future-dated auto-messages."""
from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from dm_service.application.uow import UnitOfWork
from dm_service.config import settings
from dm_service.domain.entities.auto_message import AutoMessage
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.enums import AutoMessageKind

logger = logging.getLogger(__name__)

PHRASES: tuple[str, ...] = (
    "Hello! How are you?",
    "Good morning! How is your day going?",
    "Hi! We haven't talked in a while.",
    "Hey! What's new?",
    "Hello! How is life treating you?",
    "Greetings! How is the weather today?",
    "Hey! It's been a long time since we talked.",
    "Hello! How is it going?",
    "Hi! What are you up to?",
    "Hey! How are you doing?",
    "Hello! How is today?",
    "Hi! You've been away for a while.",
    "Hey! How are things?",
    "Hello! Any news?",
    "Hi! How is your day so far?",
)

MIN_DAYS_AHEAD = 1
MAX_DAYS_AHEAD = 7
# Send hour window, inclusive, in scheduler local time
FIRST_HOUR = 9
LAST_HOUR = 20


def shuffle_users(users: list[User], rng: random.Random) -> list[User]:
    shuffled = list(users)
    rng.shuffle(shuffled)
    return shuffled


def create_user_pairs(users: list[User]) -> list[tuple[User, User]]:
    """Pair consecutive users; an odd leftover is paired with the first user.

    The first user may therefore appear in two pairs.
    """
    pairs = [(users[i], users[i + 1]) for i in range(0, len(users) - 1, 2)]
    if len(users) % 2 == 1 and len(users) > 1:
        pairs.append((users[-1], users[0]))
    return pairs


def random_content(rng: random.Random) -> str:
    return rng.choice(PHRASES)


def random_send_date(now: datetime, rng: random.Random, tz: ZoneInfo) -> datetime:
    local_today = now.astimezone(tz).date()
    day = local_today + timedelta(days=rng.randint(MIN_DAYS_AHEAD, MAX_DAYS_AHEAD))
    at = time(hour=rng.randint(FIRST_HOUR, LAST_HOUR), minute=rng.randint(0, 59))
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


async def plan_messages(
    uow: UnitOfWork,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    tz: ZoneInfo | None = None,
) -> list[AutoMessage]:
    """Draft one auto-message per shuffled pair of active users."""
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()
    tz = tz or ZoneInfo(settings.SCHEDULER_TIMEZONE)

    active_users = await uow.users.list_active()
    if len(active_users) < 2:
        logger.info("Not enough active users for message planning (%d)", len(active_users))
        return []

    pairs = create_user_pairs(shuffle_users(active_users, rng))
    logger.info("Found %d active users, created %d pairs", len(active_users), len(pairs))

    drafted: list[AutoMessage] = []
    for sender, receiver in pairs:
        draft = AutoMessage(
            id=uuid.uuid4(),
            sender_id=sender.id,
            receiver_id=receiver.id,
            content=random_content(rng),
            send_date=random_send_date(now, rng, tz),
            max_retries=settings.AUTO_MESSAGE_MAX_RETRIES,
            metadata={"kind": AutoMessageKind.AUTO.value, "generated_at": now.isoformat()},
            created_at=now,
            updated_at=now,
        )
        try:
            draft = await uow.auto_messages_w.create(draft)
            await uow.commit()
        except Exception:
            await uow.rollback()
            logger.exception(
                "Failed to draft auto message %d -> %d", sender.id, receiver.id,
            )
            continue
        drafted.append(draft)
        logger.info(
            "Auto message drafted: %s -> %s (%s)",
            sender.username, receiver.username, draft.send_date.isoformat(),
        )

    logger.info("Drafted %d auto messages", len(drafted))
    return drafted
