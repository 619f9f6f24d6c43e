# backend/services/room_manager.py
from __future__ import annotations

import asyncio
from typing import List, Optional

from core.errors import NotFound, PersistenceError
from core.logging import get_logger
from models.models import Room
from services.store import Store

logger = get_logger(__name__)

DEFAULT_ROOMS = [
    {"name": "General", "description": "General discussion"},
    {"name": "Random", "description": "Random conversations"},
    {"name": "Tech Talk", "description": "Technology discussions"},
    {"name": "Help & Support", "description": "Get help and support"},
]

# ============================================================================
# ROOM MEMBERSHIP AUTHORITY
# ============================================================================
class RoomManager:
    """
    Owns persisted room membership and the empty-room deletion rule.

    The persisted room is the single source of truth for authorization:
    every check reads it fresh from the store, nothing is cached between
    requests.

    Deletion policy:
        A non-default room is deleted together with its messages as soon as
        its last member leaves. ``delete_if_empty`` is the only routine that
        deletes rooms; ``leave`` calls it inline and ``sweep_empty_rooms``
        calls it periodically as a safety net for deletions that were missed
        (for example a restart between a leave and its cleanup).

    Concurrency:
        A leave and a join on the same room can interleave at any await.
        The store's compare-and-delete re-checks the member count at delete
        time, so a room that gained a member after the leave is kept.

    Usage:
        room_manager = RoomManager(store)
        room = await room_manager.create_room("Product", "Product talk", user.id)
        deleted = await room_manager.leave(room.id, user.id)
    """

    def __init__(self, store: Store, sweep_interval: float = 30 * 60):
        self.store = store
        self.sweep_interval = sweep_interval

    async def _require_room(self, room_id: str) -> Room:
        room = await self.store.get_room(room_id)
        if room is None:
            raise NotFound("Room not found")
        return room

    async def get_room(self, room_id: str) -> Room:
        return await self._require_room(room_id)

    async def list_rooms(self) -> List[Room]:
        """Active rooms, newest first."""
        rooms = [room for room in await self.store.list_rooms() if room.is_active]
        return sorted(rooms, key=lambda room: room.created_at, reverse=True)

    async def create_room(self, name: str, description: str, created_by: Optional[str]) -> Room:
        """
        Create a user room. The creator is its first member.

        Args:
            name: Room name
            description: Room description
            created_by: User id of the creator

        Returns:
            Room: The newly created room
        """
        members = [created_by] if created_by else []
        room = Room(name=name, description=description or "", created_by=created_by, members=members)
        await self.store.create_room(room)
        logger.info("✓ Created room: %s (%s)", room.name, room.id)
        return room

    async def seed_default_rooms(self) -> int:
        """
        Create the default rooms that do not exist yet.

        Default rooms have no creator, start empty and are never
        auto-deleted. Names are unique among default rooms.
        """
        existing = {room.name for room in await self.store.list_rooms() if room.is_default}
        created = 0
        for entry in DEFAULT_ROOMS:
            if entry["name"] in existing:
                continue
            await self.store.create_room(
                Room(name=entry["name"], description=entry["description"], is_default=True)
            )
            created += 1
            logger.info("✓ Created default room: %s", entry["name"])
        return created

    async def is_member(self, room_id: str, user_id: str) -> bool:
        room = await self._require_room(room_id)
        return room.has_member(user_id)

    async def join(self, room_id: str, user_id: str) -> Room:
        """Add a member. Joining twice is a no-op that still returns the room."""
        room = await self.store.add_member(room_id, user_id)
        if room is None:
            raise NotFound("Room not found")
        logger.info("→ %s joined '%s' (%d members)", user_id, room.name, room.member_count)
        return room

    async def leave(self, room_id: str, user_id: str) -> bool:
        """
        Remove a member and apply the empty-room rule.

        Returns:
            True if the room was deleted because it became empty
        """
        room = await self.store.remove_member(room_id, user_id)
        if room is None:
            raise NotFound("Room not found")
        logger.info("← %s left '%s' (%d members)", user_id, room.name, room.member_count)
        if room.is_default:
            return False
        return await self.delete_if_empty(room_id)

    async def delete_if_empty(self, room_id: str) -> bool:
        """
        Delete a non-default room and its messages if it has no members.

        The member count is re-read by the store at delete time. Message
        cleanup runs after the room is gone; if it fails the room stays
        deleted and the sweep collects its messages later.
        """
        deleted = await self.store.delete_room_if_empty(room_id)
        if not deleted:
            return False

        logger.info("✓ Deleted empty room: %s", room_id)
        try:
            removed = await self.store.delete_messages(room_id)
            logger.info("✓ Deleted %d message(s) of room %s", removed, room_id)
        except PersistenceError as e:
            logger.error("Failed to delete messages of room %s: %s", room_id, e)
        return True

    async def sweep_empty_rooms(self) -> int:
        """
        Delete every non-default room found with zero members, then drop
        messages left behind by rooms that no longer exist.
        """
        deleted = 0
        for room in await self.store.list_rooms():
            if room.is_default or room.members:
                continue
            if await self.delete_if_empty(room.id):
                deleted += 1
        if deleted:
            logger.info("Cleaned up %d empty room(s)", deleted)

        for room_id in await self.store.list_orphaned_message_rooms():
            removed = await self.store.delete_messages(room_id)
            logger.info("✓ Deleted %d orphaned message(s) of room %s", removed, room_id)
        return deleted

    async def run_periodic_sweep(self) -> None:
        """Background task: sweep forever on a fixed interval."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep_empty_rooms()
            except PersistenceError as e:
                logger.error("Error cleaning up empty rooms: %s", e)
            except Exception as e:
                logger.exception("Unexpected error in empty-room sweep: %s", e)
