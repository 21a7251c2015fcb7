from __future__ import annotations

import pytest

from dm_service.services.presence_service import USER_OFFLINE, USER_ONLINE, PresenceRegistry
from tests.conftest import FakeConnections, FakeReachabilitySet, FakeRelay, uow_factory_for


@pytest.fixture
def registry(db):
    return PresenceRegistry(
        FakeConnections(), FakeReachabilitySet(), uow_factory_for(db), relay=FakeRelay(),
    )


@pytest.mark.asyncio
async def test_register_marks_reachable_and_broadcasts(registry, db):
    await registry.register(1, "ws-1", username="alice")

    assert await registry.is_reachable(1) is True
    assert registry.route_local(1) == "ws-1"
    assert db.users[1].last_seen is not None
    event, data, exclude = registry.local.broadcasts[0]
    assert (event, data["user_id"], exclude) == (USER_ONLINE, 1, 1)
    assert registry._relay.relayed[0]["event"] == USER_ONLINE


@pytest.mark.asyncio
async def test_unregister_last_connection_goes_offline(registry):
    await registry.register(1, "ws-1")
    await registry.register(1, "ws-2")

    await registry.unregister(1, "ws-1")
    assert await registry.is_reachable(1) is True

    await registry.unregister(1, "ws-2")
    assert await registry.is_reachable(1) is False
    assert registry.route_local(1) is None
    assert registry.local.broadcasts[-1][0] == USER_OFFLINE


@pytest.mark.asyncio
async def test_push_prefers_local_connection(registry):
    await registry.register(2, "ws-2")

    pushed = await registry.push(2, "message_received", {"x": 1})

    assert pushed is True
    assert registry.local.sent == [(2, "message_received", {"x": 1})]
    assert all(r["target"] is None for r in registry._relay.relayed)


@pytest.mark.asyncio
async def test_push_relays_to_user_on_other_instance(registry):
    await registry._reachability.add(3)

    pushed = await registry.push(3, "user_typing", {"user_id": 1})

    assert pushed is True
    assert registry._relay.relayed[-1] == {
        "event": "user_typing", "data": {"user_id": 1}, "target": 3, "exclude": None,
    }


@pytest.mark.asyncio
async def test_push_to_offline_user_is_skipped(registry):
    assert await registry.push(3, "message_received", {}) is False
    assert registry._relay.relayed == []


@pytest.mark.asyncio
async def test_shared_store_outage_does_not_block_register(db):
    reachability = FakeReachabilitySet(fail=True)
    registry = PresenceRegistry(FakeConnections(), reachability, uow_factory_for(db))

    await registry.register(1, "ws-1")

    assert registry.route_local(1) == "ws-1"
    # falls back to the local view
    assert await registry.is_reachable(1) is True
    assert await registry.is_reachable(2) is False


@pytest.mark.asyncio
async def test_relay_failure_reported_as_not_pushed(db):
    reachability = FakeReachabilitySet(online={3})
    registry = PresenceRegistry(
        FakeConnections(), reachability, uow_factory_for(db), relay=FakeRelay(fail=True),
    )

    assert await registry.push(3, "message_received", {}) is False


@pytest.mark.asyncio
async def test_online_queries(registry):
    await registry.register(1, "ws-1")
    await registry.register(2, "ws-2")

    assert await registry.online_count() == 2
    assert await registry.online_users() == [1, 2]


@pytest.mark.asyncio
async def test_user_stays_reachable_while_connected_on_another_instance(db):
    shared = FakeReachabilitySet()
    instance_a = PresenceRegistry(FakeConnections(), shared, uow_factory_for(db))
    instance_b = PresenceRegistry(FakeConnections(), shared, uow_factory_for(db))
    await instance_a.register(1, "ws-a")
    await instance_b.register(1, "ws-b")

    await instance_b.unregister(1, "ws-b")

    assert await instance_b.is_reachable(1) is True
    assert instance_b.route_local(1) is None
    assert all(b[0] != USER_OFFLINE for b in instance_b.local.broadcasts)

    await instance_a.unregister(1, "ws-a")

    assert await instance_a.is_reachable(1) is False
    assert instance_a.local.broadcasts[-1][0] == USER_OFFLINE


@pytest.mark.asyncio
async def test_unregister_during_store_outage_uses_local_view(db):
    reachability = FakeReachabilitySet()
    registry = PresenceRegistry(FakeConnections(), reachability, uow_factory_for(db))
    await registry.register(1, "ws-1")
    reachability.fail = True

    await registry.unregister(1, "ws-1")

    assert registry.local.broadcasts[-1][0] == USER_OFFLINE
