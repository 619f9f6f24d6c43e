"""Tests for the room broadcast router."""

import anyio
import pytest

pytestmark = pytest.mark.anyio


class TestSubscriptions:
    async def test_subscribe_and_unsubscribe(self, connection_manager, connect) -> None:
        connect("c1")

        assert connection_manager.subscribe("c1", "room-a") is True
        assert connection_manager.subscriptions("c1") == {"room-a"}
        assert connection_manager.subscribers("room-a") == {"c1"}

        connection_manager.unsubscribe("c1", "room-a")
        assert connection_manager.subscriptions("c1") == set()
        assert "room-a" not in connection_manager.rooms

    async def test_subscribe_unknown_connection(self, connection_manager) -> None:
        assert connection_manager.subscribe("ghost", "room-a") is False
        assert connection_manager.subscribers("room-a") == set()

    async def test_unregister_drops_all_subscriptions(self, connection_manager, connect) -> None:
        connect("c1")
        connect("c2")
        connection_manager.subscribe("c1", "room-a")
        connection_manager.subscribe("c1", "room-b")
        connection_manager.subscribe("c2", "room-b")

        connection_manager.unregister("c1")

        assert "c1" not in connection_manager.connections
        assert "room-a" not in connection_manager.rooms
        assert connection_manager.subscribers("room-b") == {"c2"}


class TestBroadcast:
    async def test_broadcast_reaches_only_room_subscribers(self, connection_manager, connect) -> None:
        in_a = connect("c1")
        also_in_a = connect("c2")
        in_b = connect("c3")
        connection_manager.subscribe("c1", "room-a")
        connection_manager.subscribe("c2", "room-a")
        connection_manager.subscribe("c3", "room-b")

        delivered = await connection_manager.broadcast("room-a", "new-message", {"content": "hi"})

        assert delivered == 2
        assert in_a.events("new-message") == [{"content": "hi"}]
        assert also_in_a.events("new-message") == [{"content": "hi"}]
        assert in_b.sent == []

    async def test_broadcast_excludes_connection(self, connection_manager, connect) -> None:
        sender = connect("c1")
        other = connect("c2")
        connection_manager.subscribe("c1", "room-a")
        connection_manager.subscribe("c2", "room-a")

        await connection_manager.broadcast("room-a", "user-typing", {"userId": "u1"}, exclude="c1")

        assert sender.sent == []
        assert other.events("user-typing") == [{"userId": "u1"}]

    async def test_broadcast_to_empty_room(self, connection_manager) -> None:
        assert await connection_manager.broadcast("room-a", "new-message", {}) == 0

    async def test_failed_send_does_not_stop_others(self, connection_manager, connect) -> None:
        connect("broken", fail=True)
        healthy = connect("c2")
        connection_manager.subscribe("broken", "room-a")
        connection_manager.subscribe("c2", "room-a")

        delivered = await connection_manager.broadcast("room-a", "new-message", {"content": "hi"})

        assert delivered == 1
        assert healthy.events("new-message") == [{"content": "hi"}]

    async def test_slow_connection_is_skipped(self, connection_manager, connect) -> None:
        connection_manager.send_timeout = 0.05
        slow = connect("slow")
        fast = connect("fast")

        async def stalled_send(event, data) -> None:
            await anyio.sleep(10)

        slow.send = stalled_send
        connection_manager.subscribe("slow", "room-a")
        connection_manager.subscribe("fast", "room-a")

        with anyio.fail_after(2):
            delivered = await connection_manager.broadcast("room-a", "new-message", {})

        assert delivered == 1
        assert fast.events("new-message") == [{}]

    async def test_broadcast_all(self, connection_manager, connect) -> None:
        first = connect("c1")
        second = connect("c2")

        await connection_manager.broadcast_all("user-status-changed", {"isOnline": True}, exclude="c1")

        assert first.sent == []
        assert second.events("user-status-changed") == [{"isOnline": True}]

    async def test_send_to_single_connection(self, connection_manager, connect) -> None:
        target = connect("c1")

        assert await connection_manager.send("c1", "message-error", {"error": "nope"}) is True
        assert await connection_manager.send("ghost", "message-error", {"error": "nope"}) is False
        assert target.events("message-error") == [{"error": "nope"}]
