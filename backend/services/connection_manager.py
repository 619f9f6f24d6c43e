# backend/services/connection_manager.py

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

from core.logging import get_logger

logger = get_logger(__name__)


class Connection:
    """
    One live WebSocket, identified by a generated connection id.

    Frames are JSON objects ``{"event": <name>, "data": <payload>}``.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})


# ============================================================================
# ROOM BROADCAST ROUTER
# ============================================================================

class ConnectionManager:
    """
    Tracks live connections and which rooms each one is subscribed to.

    Subscriptions are a transport-level grouping, separate from persisted
    room membership: any connection may subscribe to a room's channel, but
    only members may send into it (enforced by the message pipeline).

    Data Structures:
        connections: Maps connection_id -> Connection
        connection_rooms: Maps connection_id -> Set of room_ids it's subscribed to
                          Example: {"c1": {"room-a", "room-b"}}
        rooms: Maps room_id -> Set of subscribed connection_ids
               Example: {"room-a": {"c1", "c2"}}

    Delivery:
        Fire-and-forget, at most once. Sends to one room run concurrently;
        a connection that errors or does not accept the frame within
        ``send_timeout`` seconds simply misses it.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.connections: Dict[str, Connection] = {}
        self.connection_rooms: Dict[str, Set[str]] = {}
        self.rooms: Dict[str, Set[str]] = {}
        self.send_timeout = send_timeout

    def register(self, connection: Connection) -> None:
        self.connections[connection.id] = connection
        self.connection_rooms[connection.id] = set()
        logger.info("✓ Connection %s registered. Total: %d", connection.id, len(self.connections))

    def unregister(self, connection_id: str) -> None:
        """Forget a connection and drop all of its subscriptions."""
        if connection_id not in self.connections:
            return

        for room_id in self.connection_rooms.pop(connection_id, set()):
            subscribers = self.rooms.get(room_id)
            if subscribers is not None:
                subscribers.discard(connection_id)
                if not subscribers:
                    del self.rooms[room_id]

        del self.connections[connection_id]
        logger.info("✗ Connection %s unregistered. Total: %d", connection_id, len(self.connections))

    def subscribe(self, connection_id: str, room_id: str) -> bool:
        """Add a room to the connection's subscriptions. No membership check."""
        if connection_id not in self.connections:
            return False  # Connection already closed

        self.connection_rooms[connection_id].add(room_id)
        self.rooms.setdefault(room_id, set()).add(connection_id)
        logger.info("→ Connection %s subscribed to room %s", connection_id, room_id)
        return True

    def unsubscribe(self, connection_id: str, room_id: str) -> bool:
        if connection_id not in self.connections:
            return False

        self.connection_rooms[connection_id].discard(room_id)
        subscribers = self.rooms.get(room_id)
        if subscribers is not None:
            subscribers.discard(connection_id)
            if not subscribers:
                del self.rooms[room_id]
        logger.info("← Connection %s unsubscribed from room %s", connection_id, room_id)
        return True

    def subscribers(self, room_id: str) -> Set[str]:
        return set(self.rooms.get(room_id, set()))

    def subscriptions(self, connection_id: str) -> Set[str]:
        return set(self.connection_rooms.get(connection_id, set()))

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Send one event to a single connection."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        return await self._deliver(connection, event, data)

    async def broadcast(
        self, room_id: str, event: str, data: Any, exclude: Optional[str] = None
    ) -> int:
        """
        Deliver an event to every connection subscribed to a room.

        Args:
            room_id: Target room
            event: Outbound event name
            data: JSON-serializable payload
            exclude: Optional connection id that should not receive it

        Returns:
            Number of connections the event was delivered to
        """
        targets = [cid for cid in self.subscribers(room_id) if cid != exclude]
        if not targets:
            logger.debug("[routing] Skipped %s: room=%s has no other subscribers", event, room_id)
            return 0

        logger.info("📨 Broadcasting %s to room %s: %d clients", event, room_id, len(targets))
        return await self._fan_out(targets, event, data)

    async def broadcast_all(self, event: str, data: Any, exclude: Optional[str] = None) -> int:
        """Deliver an event to every live connection except ``exclude``."""
        targets = [cid for cid in self.connections if cid != exclude]
        return await self._fan_out(targets, event, data)

    async def _fan_out(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        # Snapshot before the first await; subscriptions may change mid-send.
        connections = [self.connections[cid] for cid in connection_ids if cid in self.connections]
        results = await asyncio.gather(
            *(self._deliver(connection, event, data) for connection in connections)
        )
        return sum(1 for delivered in results if delivered)

    async def _deliver(self, connection: Connection, event: str, data: Any) -> bool:
        try:
            await asyncio.wait_for(connection.send(event, data), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Send of %s to %s timed out", event, connection.id)
        except Exception as e:
            logger.warning("Send of %s to %s failed: %s", event, connection.id, e)
        return False
