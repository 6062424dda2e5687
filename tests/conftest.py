"""Pytest fixtures for the counter service tests.

Provides in-memory and file-backed stores, a fake async Redis client for
exercising the remote counter and its fallback, and a factory for FastAPI
test clients configured with a given vote tracker.
"""

import asyncio
from typing import Callable, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from counter_api.config import Settings
from counter_api.main import create_app
from counter_api.storage import JsonFileStorage, MemoryStorage, RemoteCounter
from counter_api.store import StateStore

ADMIN_PASSWORD = "s3cret"
REDIS_KEY = "be-there:test-count"


class FakeRedis:
    """Async stand-in for the handful of Redis commands the counter uses."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.fail = False
        self.delay = 0.0
        self.closed = False

    async def _before_call(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key):
        await self._before_call()
        return self.data.get(key)

    async def incr(self, key):
        await self._before_call()
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    async def decr(self, key):
        await self._before_call()
        value = int(self.data.get(key, "0")) - 1
        self.data[key] = str(value)
        return value

    async def set(self, key, value, nx=False):
        await self._before_call()
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        return True

    async def ping(self):
        await self._before_call()
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def data_file(tmp_path) -> str:
    """Path of a not-yet-existing counter record."""
    return str(tmp_path / "data.json")


@pytest.fixture
def file_storage(data_file: str) -> JsonFileStorage:
    return JsonFileStorage(data_file)


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(memory_storage: MemoryStorage) -> StateStore:
    """Store without voter tracking (cookie and client flag strategies)."""
    return StateStore(memory_storage)


@pytest.fixture
def tracking_store(memory_storage: MemoryStorage) -> StateStore:
    """Store recording voter keys (address strategy)."""
    return StateStore(memory_storage, track_voters=True)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def remote_counter(fake_redis: FakeRedis) -> RemoteCounter:
    return RemoteCounter(fake_redis, REDIS_KEY, timeout=0.1)


@pytest.fixture
def remote_store(memory_storage: MemoryStorage, remote_counter: RemoteCounter) -> StateStore:
    return StateStore(memory_storage, remote=remote_counter, track_voters=True)


@pytest.fixture
def make_settings(data_file: str) -> Callable[..., Settings]:
    """Factory for isolated settings (temporary data file, no rate limit)."""
    def _make(**overrides) -> Settings:
        values = {
            "DATA_FILE": data_file,
            "ADMIN_PASSWORD": ADMIN_PASSWORD,
            "REDIS_URL": None,
            "RATE_LIMIT_ENABLED": False,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_client(make_settings):
    """Factory for started test clients; every client is closed on teardown."""
    clients = []

    def _make(
        vote_tracker: str = "cookie",
        store: Optional[StateStore] = None,
        **overrides
    ) -> TestClient:
        app = create_app(make_settings(VOTE_TRACKER=vote_tracker, **overrides), store=store)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "docker: mark test as requiring a live Redis server"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running"
    )
