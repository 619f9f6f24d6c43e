"""Tests for presence tracking and typing indicators."""

import pytest

from models.models import StopTypingPayload, TypingPayload

pytestmark = pytest.mark.anyio


class TestPresence:
    async def test_connect_marks_online_and_notifies_others(
        self, store, presence, connect, make_user
    ) -> None:
        user = await make_user("ada")
        own = connect("c1")
        other = connect("c2")

        await presence.on_connect("c1", user.id)

        assert presence.user_for("c1") == user.id
        assert (await store.get_user(user.id)).is_online is True
        assert other.events("user-status-changed") == [{"userId": user.id, "isOnline": True}]
        assert own.sent == []

    async def test_disconnect_marks_offline(self, store, presence, connect, make_user) -> None:
        user = await make_user("ada")
        connect("c1")
        other = connect("c2")
        await presence.on_connect("c1", user.id)
        before = (await store.get_user(user.id)).last_seen

        result = await presence.on_disconnect("c1")

        stored = await store.get_user(user.id)
        assert result == user.id
        assert stored.is_online is False
        assert stored.last_seen >= before
        assert other.events("user-status-changed")[-1] == {"userId": user.id, "isOnline": False}
        assert presence.user_for("c1") is None

    async def test_disconnect_of_unidentified_connection(self, presence, connect) -> None:
        other = connect("c2")

        assert await presence.on_disconnect("c1") is None
        assert other.sent == []

    async def test_each_connection_toggles_independently(self, store, presence, connect, make_user) -> None:
        user = await make_user("ada")
        connect("tab1")
        connect("tab2")
        watcher = connect("c3")
        await presence.on_connect("tab1", user.id)
        await presence.on_connect("tab2", user.id)

        await presence.on_disconnect("tab1")

        # The second tab is still open, but the user is reported offline.
        assert watcher.events("user-status-changed")[-1] == {"userId": user.id, "isOnline": False}
        assert (await store.get_user(user.id)).is_online is False
        assert presence.user_for("tab2") == user.id

    async def test_reidentified_connection_takes_old_user_offline(
        self, store, presence, connect, make_user
    ) -> None:
        ada = await make_user("ada")
        bob = await make_user("bob")
        connect("c1")
        watcher = connect("c2")
        await presence.on_connect("c1", ada.id)

        await presence.on_connect("c1", bob.id)

        assert presence.user_for("c1") == bob.id
        assert (await store.get_user(ada.id)).is_online is False
        assert (await store.get_user(bob.id)).is_online is True
        assert watcher.events("user-status-changed") == [
            {"userId": ada.id, "isOnline": True},
            {"userId": ada.id, "isOnline": False},
            {"userId": bob.id, "isOnline": True},
        ]

    async def test_broadcast_fires_when_store_is_down(self, store, presence, connect, make_user) -> None:
        user = await make_user("ada")
        connect("c1")
        other = connect("c2")
        store.available = False

        await presence.on_connect("c1", user.id)

        assert other.events("user-status-changed") == [{"userId": user.id, "isOnline": True}]


class TestTyping:
    async def test_typing_goes_to_other_subscribers_only(
        self, connection_manager, typing_coordinator, connect
    ) -> None:
        typist = connect("c1")
        reader = connect("c2")
        elsewhere = connect("c3")
        connection_manager.subscribe("c1", "room-a")
        connection_manager.subscribe("c2", "room-a")
        connection_manager.subscribe("c3", "room-b")

        await typing_coordinator.typing(
            "c1", TypingPayload(room_id="room-a", user_id="u1", username="ada")
        )
        await typing_coordinator.stop_typing("c1", StopTypingPayload(room_id="room-a", user_id="u1"))

        assert typist.sent == []
        assert elsewhere.sent == []
        assert reader.sent == [
            ("user-typing", {"userId": "u1", "username": "ada"}),
            ("user-stop-typing", {"userId": "u1"}),
        ]

    async def test_payload_accepts_wire_names(self) -> None:
        payload = TypingPayload.model_validate({"roomId": "r", "userId": "u", "username": "ada"})

        assert payload.room_id == "r"
        assert payload.user_id == "u"
