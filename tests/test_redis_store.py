"""RedisStore against a live Redis. Point REDIS_URL at a scratch database to run these."""

import os
from datetime import timedelta

import anyio
import pytest

from models.models import Message, Room, User, utcnow
from services.redis_store import KEY_PREFIX, RedisStore

pytestmark = [
    pytest.mark.anyio,
    pytest.mark.redis,
    pytest.mark.skipif(not os.environ.get("REDIS_URL"), reason="REDIS_URL not set"),
]


@pytest.fixture
async def redis_store():
    store = RedisStore(os.environ.get("REDIS_URL", ""))
    await store.connect()
    try:
        yield store
    finally:
        async for key in store.client.scan_iter(match=f"{KEY_PREFIX}:*"):
            await store.client.delete(key)
        await store.close()


class TestUsers:
    async def test_save_and_lookup(self, redis_store) -> None:
        user = User(google_id="g-1", name="ada", email="ada@example.com")
        await redis_store.save_user(user)

        assert (await redis_store.get_user(user.id)).email == "ada@example.com"
        assert (await redis_store.get_user_by_google_id("g-1")).id == user.id
        assert await redis_store.get_user_by_google_id("g-2") is None

    async def test_set_online(self, redis_store) -> None:
        user = await redis_store.save_user(User(name="ada"))
        seen = utcnow()

        assert await redis_store.set_user_online(user.id, True, seen) is True
        stored = await redis_store.get_user(user.id)
        assert stored.is_online is True
        assert stored.last_seen == seen
        assert await redis_store.set_user_online("ghost", True, seen) is False


class TestRooms:
    async def test_membership(self, redis_store) -> None:
        room = await redis_store.create_room(Room(name="Book club", members=["u1"]))

        joined = await redis_store.add_member(room.id, "u2")
        again = await redis_store.add_member(room.id, "u2")
        left = await redis_store.remove_member(room.id, "u1")

        assert joined.members == ["u1", "u2"]
        assert again.members == ["u1", "u2"]
        assert left.members == ["u2"]
        assert await redis_store.add_member("missing", "u1") is None

    async def test_delete_if_empty(self, redis_store) -> None:
        busy = await redis_store.create_room(Room(name="Busy", members=["u1"]))
        empty = await redis_store.create_room(Room(name="Empty"))
        default = await redis_store.create_room(Room(name="General", is_default=True))

        assert await redis_store.delete_room_if_empty(busy.id) is False
        assert await redis_store.delete_room_if_empty(default.id) is False
        assert await redis_store.delete_room_if_empty(empty.id) is True
        assert await redis_store.get_room(empty.id) is None
        assert {room.id for room in await redis_store.list_rooms()} == {busy.id, default.id}

    async def test_join_after_delete_is_refused(self, redis_store) -> None:
        room = await redis_store.create_room(Room(name="Scratch"))
        await redis_store.delete_room_if_empty(room.id)

        assert await redis_store.add_member(room.id, "u1") is None
        assert await redis_store.client.exists(f"{KEY_PREFIX}:room:{room.id}:members") == 0

    async def test_concurrent_joins(self, redis_store) -> None:
        room = await redis_store.create_room(Room(name="Busy"))

        async with anyio.create_task_group() as tg:
            for n in range(20):
                tg.start_soon(redis_store.add_member, room.id, f"u{n}")

        assert len((await redis_store.get_room(room.id)).members) == 20


class TestMessages:
    async def test_latest_messages_oldest_first(self, redis_store) -> None:
        start = utcnow()
        for n in range(5):
            await redis_store.add_message(
                Message(content=f"m{n}", user="u1", room="r1", created_at=start + timedelta(seconds=n))
            )

        latest = await redis_store.list_messages("r1", 3)

        assert [message.content for message in latest] == ["m2", "m3", "m4"]
        assert await redis_store.delete_messages("r1") == 5
        assert await redis_store.list_messages("r1", 3) == []

    async def test_orphaned_message_rooms(self, redis_store) -> None:
        live = await redis_store.create_room(Room(name="Live", members=["u1"]))
        await redis_store.add_message(Message(content="kept", user="u1", room=live.id))
        await redis_store.add_message(Message(content="orphan", user="u1", room="gone"))

        assert await redis_store.list_orphaned_message_rooms() == ["gone"]

