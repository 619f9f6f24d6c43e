# backend/services/typing_coordinator.py

from __future__ import annotations

from models.models import StopTypingPayload, TypingPayload
from services.connection_manager import ConnectionManager


class TypingCoordinator:
    """
    Relays typing indicators to the other subscribers of a room.

    Nothing is stored. The client owns the debounce and must send
    ``stop-typing`` itself; a client that disconnects mid-typing leaves the
    indicator showing on receivers until their next refresh.
    """

    def __init__(self, connection_manager: ConnectionManager) -> None:
        self.connection_manager = connection_manager

    async def typing(self, connection_id: str, payload: TypingPayload) -> int:
        return await self.connection_manager.broadcast(
            payload.room_id,
            "user-typing",
            {"userId": payload.user_id, "username": payload.username},
            exclude=connection_id,
        )

    async def stop_typing(self, connection_id: str, payload: StopTypingPayload) -> int:
        return await self.connection_manager.broadcast(
            payload.room_id,
            "user-stop-typing",
            {"userId": payload.user_id},
            exclude=connection_id,
        )
