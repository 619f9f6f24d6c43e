# backend/services/store.py

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from core.errors import PersistenceError
from core.logging import get_logger
from models.models import Message, Room, User

logger = get_logger(__name__)

# ============================================================================
# PERSISTENCE STORE INTERFACE
# ============================================================================

class Store(ABC):
    """
    Durable storage for users, rooms and messages.

    Every backend failure surfaces as ``PersistenceError``. Membership is
    mutated only through ``add_member``/``remove_member`` (set semantics) and
    rooms are only auto-deleted through ``delete_room_if_empty``, which
    re-checks the live member count at delete time.
    """

    async def connect(self) -> None:
        """Open the backend connection. Raises PersistenceError when unavailable."""

    async def close(self) -> None:
        """Release the backend connection."""

    # -- users ---------------------------------------------------------------

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_google_id(self, google_id: str) -> Optional[User]: ...

    @abstractmethod
    async def save_user(self, user: User) -> User: ...

    @abstractmethod
    async def set_user_online(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        """Returns False when the user does not exist."""

    # -- rooms ---------------------------------------------------------------

    @abstractmethod
    async def create_room(self, room: Room) -> Room: ...

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[Room]: ...

    @abstractmethod
    async def list_rooms(self) -> List[Room]: ...

    @abstractmethod
    async def add_member(self, room_id: str, user_id: str) -> Optional[Room]:
        """Set-add; returns the updated room, or None if the room is missing."""

    @abstractmethod
    async def remove_member(self, room_id: str, user_id: str) -> Optional[Room]:
        """Set-remove; returns the updated room, or None if the room is missing."""

    @abstractmethod
    async def delete_room_if_empty(self, room_id: str) -> bool:
        """Delete a non-default room only if it has zero members right now."""

    # -- messages ------------------------------------------------------------

    @abstractmethod
    async def add_message(self, message: Message) -> Message: ...

    @abstractmethod
    async def list_messages(self, room_id: str, limit: int) -> List[Message]:
        """The ``limit`` most recent messages, oldest first."""

    @abstractmethod
    async def delete_messages(self, room_id: str) -> int: ...

    @abstractmethod
    async def list_orphaned_message_rooms(self) -> List[str]:
        """Room ids that still hold messages but no longer exist as rooms."""


# ============================================================================
# IN-MEMORY BACKEND
# ============================================================================

class MemoryStore(Store):
    """
    Process-local store for development and tests.

    Each operation yields to the event loop once and then applies its whole
    read-modify-write without another await, which gives the same atomicity
    per call as the Redis scripts and the same interleaving points between
    calls. Setting ``available = False`` makes every call fail like a
    backend outage.
    """

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.rooms: Dict[str, Room] = {}
        self.messages: Dict[str, List[Message]] = {}
        self.available = True

    async def _checkpoint(self) -> None:
        await asyncio.sleep(0)
        if not self.available:
            raise PersistenceError("Store unavailable")

    async def connect(self) -> None:
        await self._checkpoint()
        logger.info("✓ Using in-memory store")

    async def get_user(self, user_id: str) -> Optional[User]:
        await self._checkpoint()
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        await self._checkpoint()
        for user in self.users.values():
            if user.google_id == google_id:
                return user.model_copy(deep=True)
        return None

    async def save_user(self, user: User) -> User:
        await self._checkpoint()
        self.users[user.id] = user.model_copy(deep=True)
        return user

    async def set_user_online(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        await self._checkpoint()
        user = self.users.get(user_id)
        if user is None:
            return False
        user.is_online = is_online
        user.last_seen = last_seen
        return True

    async def create_room(self, room: Room) -> Room:
        await self._checkpoint()
        self.rooms[room.id] = room.model_copy(deep=True)
        return room

    async def get_room(self, room_id: str) -> Optional[Room]:
        await self._checkpoint()
        room = self.rooms.get(room_id)
        return room.model_copy(deep=True) if room else None

    async def list_rooms(self) -> List[Room]:
        await self._checkpoint()
        return [room.model_copy(deep=True) for room in self.rooms.values()]

    async def add_member(self, room_id: str, user_id: str) -> Optional[Room]:
        await self._checkpoint()
        room = self.rooms.get(room_id)
        if room is None:
            return None
        if user_id not in room.members:
            room.members.append(user_id)
        return room.model_copy(deep=True)

    async def remove_member(self, room_id: str, user_id: str) -> Optional[Room]:
        await self._checkpoint()
        room = self.rooms.get(room_id)
        if room is None:
            return None
        room.members = [member for member in room.members if member != user_id]
        return room.model_copy(deep=True)

    async def delete_room_if_empty(self, room_id: str) -> bool:
        await self._checkpoint()
        room = self.rooms.get(room_id)
        if room is None or room.is_default or room.members:
            return False
        del self.rooms[room_id]
        return True

    async def add_message(self, message: Message) -> Message:
        await self._checkpoint()
        self.messages.setdefault(message.room, []).append(message.model_copy(deep=True))
        return message

    async def list_messages(self, room_id: str, limit: int) -> List[Message]:
        await self._checkpoint()
        ordered = sorted(self.messages.get(room_id, []), key=lambda m: m.created_at)
        return [message.model_copy(deep=True) for message in ordered[-limit:]] if limit > 0 else []

    async def delete_messages(self, room_id: str) -> int:
        await self._checkpoint()
        return len(self.messages.pop(room_id, []))

    async def list_orphaned_message_rooms(self) -> List[str]:
        await self._checkpoint()
        return [room_id for room_id in self.messages if room_id not in self.rooms]


def build_store(settings) -> Store:
    """Pick the store backend named by ``settings.STORE_BACKEND``."""
    if settings.STORE_BACKEND == "memory":
        return MemoryStore()
    if settings.STORE_BACKEND == "redis":
        from services.redis_store import RedisStore

        return RedisStore(url=settings.redis_url)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")
