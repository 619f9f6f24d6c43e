# backend/services/redis_store.py
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.errors import PersistenceError
from core.logging import get_logger
from models.models import Message, Room, User
from services.store import Store

logger = get_logger(__name__)

KEY_PREFIX = "chat"

# Membership changes refuse to touch a room that no longer exists, so a join
# racing a deletion cannot leave an orphaned member set behind.
ADD_MEMBER_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then return 0 end
redis.call('SADD', KEYS[2], ARGV[1])
return 1
"""

REMOVE_MEMBER_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then return 0 end
redis.call('SREM', KEYS[2], ARGV[1])
return 1
"""

DELETE_IF_EMPTY_LUA = """
local raw = redis.call('GET', KEYS[1])
if not raw then return 0 end
if cjson.decode(raw)['isDefault'] == true then return 0 end
if redis.call('SCARD', KEYS[2]) > 0 then return 0 end
redis.call('DEL', KEYS[1], KEYS[2])
redis.call('SREM', KEYS[3], ARGV[1])
return 1
"""

SET_ONLINE_LUA = """
local raw = redis.call('GET', KEYS[1])
if not raw then return 0 end
local user = cjson.decode(raw)
user['isOnline'] = ARGV[1] == '1'
user['lastSeen'] = ARGV[2]
redis.call('SET', KEYS[1], cjson.encode(user))
return 1
"""


class RedisStore(Store):
    """
    Redis-backed persistence.

    Layout:
        chat:user:<id>              JSON user document
        chat:users:google           hash google_id -> user id
        chat:rooms                  set of room ids
        chat:room:<id>              JSON room document (without members)
        chat:room:<id>:members      set of member user ids
        chat:room:<id>:messages     sorted set of JSON messages, scored by created_at

    Member add/remove, the conditional room delete and the presence update
    are Lua scripts, so each runs atomically on the server.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        self.url = url
        self.client = client
        self._scripts = {}
        if client is not None:
            self._register_scripts()

    # -- connection ----------------------------------------------------------

    async def connect(self) -> None:
        """Establish async connection to Redis."""
        if self.client is None:
            self.client = redis.from_url(self.url, decode_responses=True)
            self._register_scripts()
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            await self.close()
            raise PersistenceError(f"Redis unavailable: {e}") from e
        logger.info("✓ Connected to Redis store")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("Redis connection closed")

    def _register_scripts(self) -> None:
        self._scripts = {
            "add_member": self.client.register_script(ADD_MEMBER_LUA),
            "remove_member": self.client.register_script(REMOVE_MEMBER_LUA),
            "delete_if_empty": self.client.register_script(DELETE_IF_EMPTY_LUA),
            "set_online": self.client.register_script(SET_ONLINE_LUA),
        }

    @asynccontextmanager
    async def _guard(self, operation: str):
        if self.client is None:
            raise PersistenceError("Store not connected")
        try:
            yield self.client
        except RedisError as e:
            logger.error("Redis %s failed: %s", operation, e)
            raise PersistenceError(f"Store operation failed: {operation}") from e

    # -- keys ----------------------------------------------------------------

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"{KEY_PREFIX}:user:{user_id}"

    @staticmethod
    def _room_key(room_id: str) -> str:
        return f"{KEY_PREFIX}:room:{room_id}"

    @staticmethod
    def _members_key(room_id: str) -> str:
        return f"{KEY_PREFIX}:room:{room_id}:members"

    @staticmethod
    def _messages_key(room_id: str) -> str:
        return f"{KEY_PREFIX}:room:{room_id}:messages"

    ROOMS_KEY = f"{KEY_PREFIX}:rooms"
    GOOGLE_INDEX_KEY = f"{KEY_PREFIX}:users:google"

    # -- users ---------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._guard("get_user") as client:
            raw = await client.get(self._user_key(user_id))
        return User.model_validate_json(raw) if raw else None

    async def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        async with self._guard("get_user_by_google_id") as client:
            user_id = await client.hget(self.GOOGLE_INDEX_KEY, google_id)
        if not user_id:
            return None
        return await self.get_user(user_id)

    async def save_user(self, user: User) -> User:
        async with self._guard("save_user") as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._user_key(user.id), user.model_dump_json(by_alias=True))
                if user.google_id:
                    pipe.hset(self.GOOGLE_INDEX_KEY, user.google_id, user.id)
                await pipe.execute()
        return user

    async def set_user_online(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        async with self._guard("set_user_online"):
            updated = await self._scripts["set_online"](
                keys=[self._user_key(user_id)],
                args=["1" if is_online else "0", last_seen.isoformat()],
            )
        return bool(updated)

    # -- rooms ---------------------------------------------------------------

    async def create_room(self, room: Room) -> Room:
        document = room.model_dump_json(by_alias=True, exclude={"members"})
        async with self._guard("create_room") as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._room_key(room.id), document)
                pipe.sadd(self.ROOMS_KEY, room.id)
                if room.members:
                    pipe.sadd(self._members_key(room.id), *room.members)
                await pipe.execute()
        return room

    async def get_room(self, room_id: str) -> Optional[Room]:
        async with self._guard("get_room") as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.get(self._room_key(room_id))
                pipe.smembers(self._members_key(room_id))
                raw, members = await pipe.execute()
        if not raw:
            return None
        room = Room.model_validate_json(raw)
        room.members = sorted(members)
        return room

    async def list_rooms(self) -> List[Room]:
        async with self._guard("list_rooms") as client:
            room_ids = await client.smembers(self.ROOMS_KEY)
        rooms = []
        for room_id in room_ids:
            room = await self.get_room(room_id)
            if room is not None:
                rooms.append(room)
        return rooms

    async def add_member(self, room_id: str, user_id: str) -> Optional[Room]:
        async with self._guard("add_member"):
            found = await self._scripts["add_member"](
                keys=[self._room_key(room_id), self._members_key(room_id)],
                args=[user_id],
            )
        return await self.get_room(room_id) if found else None

    async def remove_member(self, room_id: str, user_id: str) -> Optional[Room]:
        async with self._guard("remove_member"):
            found = await self._scripts["remove_member"](
                keys=[self._room_key(room_id), self._members_key(room_id)],
                args=[user_id],
            )
        return await self.get_room(room_id) if found else None

    async def delete_room_if_empty(self, room_id: str) -> bool:
        async with self._guard("delete_room_if_empty"):
            deleted = await self._scripts["delete_if_empty"](
                keys=[self._room_key(room_id), self._members_key(room_id), self.ROOMS_KEY],
                args=[room_id],
            )
        return bool(deleted)

    # -- messages ------------------------------------------------------------

    async def add_message(self, message: Message) -> Message:
        async with self._guard("add_message") as client:
            await client.zadd(
                self._messages_key(message.room),
                {message.model_dump_json(by_alias=True): message.created_at.timestamp()},
            )
        return message

    async def list_messages(self, room_id: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        async with self._guard("list_messages") as client:
            raw_messages = await client.zrange(self._messages_key(room_id), -limit, -1)
        return [Message.model_validate_json(raw) for raw in raw_messages]

    async def delete_messages(self, room_id: str) -> int:
        async with self._guard("delete_messages") as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.zcard(self._messages_key(room_id))
                pipe.delete(self._messages_key(room_id))
                count, _ = await pipe.execute()
        return int(count)

    async def list_orphaned_message_rooms(self) -> List[str]:
        prefix, suffix = f"{KEY_PREFIX}:room:", ":messages"
        orphaned = []
        async with self._guard("list_orphaned_message_rooms") as client:
            async for key in client.scan_iter(match=f"{prefix}*{suffix}"):
                room_id = key[len(prefix):-len(suffix)]
                if not await client.sismember(self.ROOMS_KEY, room_id):
                    orphaned.append(room_id)
        return orphaned
