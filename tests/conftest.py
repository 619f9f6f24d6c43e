"""Shared fixtures for the chat backend tests."""

from typing import Any, List, Tuple

import pytest

from models.models import User
from services.connection_manager import ConnectionManager
from services.message_service import MessageService
from services.presence import PresenceTracker
from services.room_manager import RoomManager
from services.store import MemoryStore
from services.typing_coordinator import TypingCoordinator


class FakeConnection:
    """Stands in for a WebSocket-backed Connection and records what it receives."""

    def __init__(self, connection_id: str, fail: bool = False) -> None:
        self.id = connection_id
        self.fail = fail
        self.sent: List[Tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append((event, data))

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.sent if event == name]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager(send_timeout=1.0)


@pytest.fixture
def room_manager(store) -> RoomManager:
    return RoomManager(store, sweep_interval=0.01)


@pytest.fixture
def presence(store, connection_manager) -> PresenceTracker:
    return PresenceTracker(store, connection_manager)


@pytest.fixture
def typing_coordinator(connection_manager) -> TypingCoordinator:
    return TypingCoordinator(connection_manager)


@pytest.fixture
def message_service(store, room_manager, connection_manager) -> MessageService:
    return MessageService(store, room_manager, connection_manager, history_limit=100)


@pytest.fixture
def connect(connection_manager):
    """Register a recording connection under the given id."""

    def _connect(connection_id: str, fail: bool = False) -> FakeConnection:
        connection = FakeConnection(connection_id, fail=fail)
        connection_manager.register(connection)
        return connection

    return _connect


@pytest.fixture
def make_user(store):
    """Persist a user and return it."""

    async def _make_user(name: str) -> User:
        return await store.save_user(User(name=name, avatar=f"https://avatars.test/{name}.png"))

    return _make_user
