from __future__ import annotations

import random
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dm_service.services import planner_service
from tests.conftest import NOW, FakeUoW, make_user

TZ = ZoneInfo("Europe/Istanbul")


def test_create_user_pairs_even():
    users = [make_user(i) for i in range(1, 5)]

    pairs = planner_service.create_user_pairs(users)

    assert [(a.id, b.id) for a, b in pairs] == [(1, 2), (3, 4)]


def test_create_user_pairs_odd_leftover_pairs_with_first():
    users = [make_user(i) for i in range(1, 6)]

    pairs = planner_service.create_user_pairs(users)

    assert [(a.id, b.id) for a, b in pairs] == [(1, 2), (3, 4), (5, 1)]


def test_create_user_pairs_single_user():
    assert planner_service.create_user_pairs([make_user(1)]) == []


def test_shuffle_keeps_every_user():
    users = [make_user(i) for i in range(1, 11)]

    shuffled = planner_service.shuffle_users(users, random.Random(7))

    assert sorted(u.id for u in shuffled) == list(range(1, 11))
    assert [u.id for u in users] == list(range(1, 11))


def test_random_send_date_window():
    rng = random.Random(3)
    today = NOW.astimezone(TZ).date()

    for _ in range(200):
        send_date = planner_service.random_send_date(NOW, rng, TZ)
        local = send_date.astimezone(TZ)
        assert send_date.tzinfo is not None
        assert 1 <= (local.date() - today).days <= 7
        assert planner_service.FIRST_HOUR <= local.hour <= planner_service.LAST_HOUR


@pytest.mark.asyncio
async def test_plan_messages_drafts_one_per_pair(db):
    db.add_users(make_user(4), make_user(5))
    uow = FakeUoW(db)

    drafted = await planner_service.plan_messages(uow, now=NOW, rng=random.Random(1), tz=TZ)

    assert len(drafted) == 3
    assert set(db.auto_messages) == {d.id for d in drafted}
    for draft in drafted:
        assert draft.sender_id != draft.receiver_id
        assert draft.content in planner_service.PHRASES
        assert draft.send_date > NOW
        assert not draft.is_queued and not draft.is_sent
        assert draft.metadata["kind"] == "auto"


@pytest.mark.asyncio
async def test_plan_messages_needs_two_active_users():
    uow = FakeUoW()
    uow.db.add_users(make_user(1), make_user(2, is_active=False))

    drafted = await planner_service.plan_messages(uow, now=NOW, tz=TZ)

    assert drafted == []
    assert uow.db.auto_messages == {}


@pytest.mark.asyncio
async def test_plan_messages_skips_failed_draft_and_continues(db):
    db.add_users(make_user(4))
    uow = FakeUoW(db)
    original_create = uow.auto_messages_w.create
    calls = {"n": 0}

    async def flaky_create(auto_message):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("insert failed")
        return await original_create(auto_message)

    uow.auto_messages_w.create = flaky_create

    drafted = await planner_service.plan_messages(
        uow, now=datetime(2024, 1, 1, tzinfo=timezone.utc), rng=random.Random(5), tz=TZ,
    )

    assert len(drafted) == 1
    assert uow.rollbacks == 1
