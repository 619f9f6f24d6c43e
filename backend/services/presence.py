# backend/services/presence.py

from __future__ import annotations

from typing import Dict, Optional, Set

from core.errors import PersistenceError
from core.logging import get_logger
from models.models import utcnow
from services.connection_manager import ConnectionManager
from services.store import Store

logger = get_logger(__name__)


class PresenceTracker:
    """
    Maps connection ids to the user each connection identified as.

    Every connection is tracked on its own: a user with two tabs open goes
    offline as soon as either tab disconnects. The persisted online flag and
    the ``user-status-changed`` broadcast are not atomic with each other; a
    failed write is logged and the broadcast still goes out.
    """

    def __init__(self, store: Store, connection_manager: ConnectionManager) -> None:
        self.store = store
        self.connection_manager = connection_manager
        self.connection_users: Dict[str, str] = {}

    def user_for(self, connection_id: str) -> Optional[str]:
        return self.connection_users.get(connection_id)

    def online_users(self) -> Set[str]:
        return set(self.connection_users.values())

    async def on_connect(self, connection_id: str, user_id: str) -> None:
        previous = self.connection_users.get(connection_id)
        if previous is not None and previous != user_id:
            # Re-identifying a connection takes the old user offline first.
            logger.warning("%s re-identified from %s to %s", connection_id, previous, user_id)
            await self.on_disconnect(connection_id)
        self.connection_users[connection_id] = user_id
        await self._persist(user_id, is_online=True)
        await self.connection_manager.broadcast_all(
            "user-status-changed",
            {"userId": user_id, "isOnline": True},
            exclude=connection_id,
        )
        logger.info("● %s online via %s", user_id, connection_id)

    async def on_disconnect(self, connection_id: str) -> Optional[str]:
        user_id = self.connection_users.pop(connection_id, None)
        if user_id is None:
            return None

        await self._persist(user_id, is_online=False)
        await self.connection_manager.broadcast_all(
            "user-status-changed",
            {"userId": user_id, "isOnline": False},
            exclude=connection_id,
        )
        logger.info("○ %s offline (%s closed)", user_id, connection_id)
        return user_id

    async def _persist(self, user_id: str, is_online: bool) -> None:
        try:
            found = await self.store.set_user_online(user_id, is_online, utcnow())
        except PersistenceError as e:
            logger.error("Error updating user status for %s: %s", user_id, e)
            return
        if not found:
            logger.warning("Status update for unknown user %s", user_id)
