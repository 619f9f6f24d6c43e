# backend/core/state.py
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Request, WebSocket

from core.config import Settings
from core.errors import PersistenceError
from core.logging import get_logger
from services.connection_manager import ConnectionManager
from services.message_service import MessageService
from services.presence import PresenceTracker
from services.room_manager import RoomManager
from services.sessions import SessionStore
from services.store import Store, build_store
from services.typing_coordinator import TypingCoordinator

logger = get_logger(__name__)


class ChatState:
    """
    Owns every stateful component for the lifetime of one application.

    Built once per app, attached to ``app.state.chat`` and handed to
    endpoints through ``get_state``. ``startup`` connects the store and
    starts the background tasks; ``shutdown`` cancels them and closes the
    store.
    """

    def __init__(self, settings: Settings, store: Optional[Store] = None) -> None:
        self.settings = settings
        self.store = store if store is not None else build_store(settings)
        self.connection_manager = ConnectionManager(send_timeout=settings.SEND_TIMEOUT_SECONDS)
        self.presence = PresenceTracker(self.store, self.connection_manager)
        self.room_manager = RoomManager(self.store, sweep_interval=settings.SWEEP_INTERVAL_SECONDS)
        self.typing = TypingCoordinator(self.connection_manager)
        self.messages = MessageService(
            self.store,
            self.room_manager,
            self.connection_manager,
            history_limit=settings.MESSAGE_HISTORY_LIMIT,
        )
        self.sessions = SessionStore(max_age=settings.SESSION_MAX_AGE_SECONDS)
        self.store_ready = False
        self.started_at = datetime.now(timezone.utc)
        self._tasks: List[asyncio.Task] = []

    async def startup(self) -> None:
        if not await self._try_connect():
            # Keep serving; the store comes up on its own schedule.
            self._spawn(self._connect_with_retry(), "store-connect")
        self._spawn(self.sessions.run_periodic_cleanup(), "session-cleanup")

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.store.close()
        logger.info("Application state shut down")

    def _spawn(self, coro, name: str) -> None:
        self._tasks.append(asyncio.create_task(coro, name=name))

    async def _try_connect(self) -> bool:
        try:
            await self.store.connect()
        except PersistenceError as e:
            logger.error("❌ Store connection error: %s", e)
            return False

        self.store_ready = True
        try:
            await self.room_manager.seed_default_rooms()
        except PersistenceError as e:
            logger.error("Error seeding default rooms: %s", e)
        self._spawn(self.room_manager.run_periodic_sweep(), "empty-room-sweep")
        return True

    async def _connect_with_retry(self) -> None:
        while True:
            logger.info("⏰ Retrying store connection in %s seconds...", self.settings.STORE_RETRY_SECONDS)
            await asyncio.sleep(self.settings.STORE_RETRY_SECONDS)
            if await self._try_connect():
                return


def get_state(request: Request) -> ChatState:
    return request.app.state.chat


def get_ws_state(websocket: WebSocket) -> ChatState:
    return websocket.app.state.chat
