from __future__ import annotations

import pytest

from support_relay.domain.value_objects.enums import ParticipantKind
from support_relay.infrastructure.ws.registry import ConnectionRegistry
from tests.conftest import FakeConnection

CUSTOMER = ParticipantKind.CUSTOMER
STAFF = ParticipantKind.STAFF


@pytest.mark.asyncio
async def test_send_to_registered_participant():
    registry = ConnectionRegistry()
    conn = FakeConnection()
    await registry.register(CUSTOMER, "s1", conn)

    assert await registry.send(CUSTOMER, "s1", "pong", {}) is True
    assert conn.types() == ["pong"]


@pytest.mark.asyncio
async def test_send_to_unknown_is_noop():
    registry = ConnectionRegistry()
    assert await registry.send(CUSTOMER, "missing", "pong", {}) is False


@pytest.mark.asyncio
async def test_newer_connection_replaces_older():
    registry = ConnectionRegistry()
    old, new = FakeConnection(), FakeConnection()
    await registry.register(CUSTOMER, "s1", old)
    await registry.register(CUSTOMER, "s1", new)

    await registry.send(CUSTOMER, "s1", "pong", {})

    assert old.frames == []
    assert new.types() == ["pong"]
    # The stale connection closing must not evict the live one.
    assert await registry.unregister(CUSTOMER, "s1", old) is False
    assert registry.resolve(CUSTOMER, "s1") is new


@pytest.mark.asyncio
async def test_staff_online_transitions_are_broadcast_to_customers():
    registry = ConnectionRegistry()
    customer = FakeConnection()
    await registry.register(CUSTOMER, "s1", customer)

    await registry.register(STAFF, "7", FakeConnection())
    await registry.register(STAFF, "8", FakeConnection())
    assert registry.staff_online
    await registry.unregister(STAFF, "7")
    assert registry.staff_online
    await registry.unregister(STAFF, "8")
    assert not registry.staff_online

    assert customer.of_type("agentOnlineStatus") == [{"online": True}, {"online": False}]


@pytest.mark.asyncio
async def test_failed_send_drops_connection():
    registry = ConnectionRegistry()
    await registry.register(STAFF, "7", FakeConnection(fail=True))

    assert await registry.send(STAFF, "7", "stats", {}) is False
    assert registry.count(STAFF) == 0


@pytest.mark.asyncio
async def test_broadcast_reaches_only_kind_and_survives_dead_sockets():
    registry = ConnectionRegistry()
    good, dead, customer = FakeConnection(), FakeConnection(fail=True), FakeConnection()
    await registry.register(STAFF, "7", good)
    await registry.register(STAFF, "8", dead)
    await registry.register(CUSTOMER, "s1", customer)
    customer.clear()

    await registry.broadcast(STAFF, "stats", {"activeChats": 1})

    assert good.of_type("stats") == [{"activeChats": 1}]
    assert customer.frames == []
    assert registry.resolve(STAFF, "8") is None
