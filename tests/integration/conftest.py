"""Pytest fixtures for integration tests against a live Redis server.

Tests using these fixtures skip when Redis is not reachable. Point them at
a server with REDIS_URL (default redis://localhost:6379/15).
"""

import os
import uuid
from typing import Generator

import pytest
import redis

from counter_api.storage import JsonFileStorage, RemoteCounter
from counter_api.store import StateStore


@pytest.fixture(scope="session")
def redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture(scope="session")
def redis_client(redis_url: str) -> Generator[redis.Redis, None, None]:
    """Synchronous Redis client for test assertions and setup."""
    client = redis.Redis.from_url(redis_url, decode_responses=True)

    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis not available")

    yield client

    client.close()


@pytest.fixture
def redis_key(redis_client: redis.Redis) -> Generator[str, None, None]:
    """Unique counter key, deleted after the test."""
    key = f"be-there:test:{uuid.uuid4().hex}"
    yield key
    redis_client.delete(key)


@pytest.fixture
def live_store(redis_url: str, redis_key: str, tmp_path) -> StateStore:
    """Store backed by a temporary file and the live Redis counter."""
    remote = RemoteCounter.from_url(redis_url, redis_key, timeout=1.0)
    return StateStore(
        JsonFileStorage(str(tmp_path / "data.json")),
        remote=remote,
        track_voters=True
    )
