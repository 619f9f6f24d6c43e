"""Store selection and failure behaviour that needs no running backend."""

import pytest

from core.config import Settings
from core.errors import PersistenceError
from services.redis_store import RedisStore
from services.store import MemoryStore, build_store

pytestmark = pytest.mark.anyio


class TestBuildStore:
    def test_memory_backend(self) -> None:
        settings = Settings()
        settings.STORE_BACKEND = "memory"

        assert isinstance(build_store(settings), MemoryStore)

    def test_redis_backend_uses_settings_url(self) -> None:
        settings = Settings()
        settings.STORE_BACKEND = "redis"
        settings.REDIS_HOST = "cache.internal"
        settings.REDIS_PORT = 6380
        settings.REDIS_DB = 0
        settings.REDIS_SSL = False
        settings.REDIS_ACCESS_KEY = ""

        store = build_store(settings)

        assert isinstance(store, RedisStore)
        assert store.url == "redis://cache.internal:6380/0"

    def test_unknown_backend(self) -> None:
        settings = Settings()
        settings.STORE_BACKEND = "postgres"

        with pytest.raises(ValueError):
            build_store(settings)


class TestUnavailableBackends:
    async def test_unreachable_redis_raises_persistence_error(self) -> None:
        store = RedisStore("redis://127.0.0.1:1/0")

        with pytest.raises(PersistenceError):
            await store.connect()

        assert store.client is None

    async def test_memory_store_outage(self) -> None:
        store = MemoryStore()
        store.available = False

        with pytest.raises(PersistenceError):
            await store.list_rooms()
