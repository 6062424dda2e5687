"""Storage backends for the counter: local JSON file, in-memory, and Redis."""
import asyncio
import logging
import os
import tempfile
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import RemoteStoreUnavailable, StorageReadError, StorageWriteError
from .models import DEFAULT_EVENT_TEXT, CounterState

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """Local durable record, rewritten wholesale on every mutation."""

    def __init__(self, path: str, default_event_text: str = DEFAULT_EVENT_TEXT):
        self.path = os.path.abspath(path)
        self.default_event_text = default_event_text

    def default_state(self) -> CounterState:
        """State used on first run and whenever the record is unreadable."""
        return CounterState(event_text=self.default_event_text)

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def read(self) -> CounterState:
        """
        Read the record from disk.

        Returns:
            The persisted CounterState

        Raises:
            StorageReadError: If the file is missing, unreadable or corrupt
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
            return CounterState.from_json(raw, self.default_event_text)
        except (OSError, ValueError) as e:
            raise StorageReadError(f"Cannot read {self.path}: {e}") from e

    def write(self, state: CounterState) -> None:
        """
        Replace the record on disk.

        The record is written to a temporary file next to the target and
        renamed over it, so readers never see a partial file.

        Raises:
            StorageWriteError: If the file cannot be written
        """
        directory = os.path.dirname(self.path)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".counter-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(state.to_json())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageWriteError(f"Cannot write {self.path}: {e}") from e

    def check_writable(self) -> bool:
        """Whether the record can be (re)written in place."""
        if self.exists():
            return os.access(self.path, os.W_OK)
        return os.access(os.path.dirname(self.path), os.W_OK)

    def __repr__(self) -> str:
        return f"JsonFileStorage({self.path!r})"


class MemoryStorage:
    """In-process record with the same interface as JsonFileStorage."""

    def __init__(self, default_event_text: str = DEFAULT_EVENT_TEXT, raw: Optional[str] = None):
        self.default_event_text = default_event_text
        # Kept serialized so callers never share a mutable CounterState
        self.raw = raw
        self.fail_writes = False

    def default_state(self) -> CounterState:
        return CounterState(event_text=self.default_event_text)

    def exists(self) -> bool:
        return self.raw is not None

    def read(self) -> CounterState:
        if self.raw is None:
            raise StorageReadError("No record stored")
        try:
            return CounterState.from_json(self.raw, self.default_event_text)
        except ValueError as e:
            raise StorageReadError(f"Corrupt record: {e}") from e

    def write(self, state: CounterState) -> None:
        if self.fail_writes:
            raise StorageWriteError("Writes are disabled")
        self.raw = state.to_json()

    def check_writable(self) -> bool:
        return not self.fail_writes

    def __repr__(self) -> str:
        return "MemoryStorage()"


class RemoteCounter:
    """Redis-backed numeric counter with bounded call time."""

    def __init__(self, client: redis.Redis, key: str, timeout: float = 0.5):
        """
        Args:
            client: Async Redis client
            key: Key holding the counter
            timeout: Seconds allowed for each remote call
        """
        self.client = client
        self.key = key
        self.timeout = timeout

    @classmethod
    def from_url(cls, url: str, key: str, timeout: float = 0.5) -> "RemoteCounter":
        """Build a counter on a lazily connected Redis client."""
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout
        )
        return cls(client, key, timeout)

    async def _call(self, operation: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RemoteStoreUnavailable(
                f"Redis {operation} timed out after {self.timeout}s"
            ) from e
        except (RedisError, OSError) as e:
            raise RemoteStoreUnavailable(f"Redis {operation} failed: {e}") from e

    async def get(self) -> Optional[int]:
        """
        Read the counter.

        Returns:
            The current value, or None if the key does not exist

        Raises:
            RemoteStoreUnavailable: On error, timeout or a non-numeric value
        """
        value = await self._call("GET", self.client.get(self.key))
        if value is None:
            return None
        try:
            return max(int(value), 0)
        except (TypeError, ValueError) as e:
            raise RemoteStoreUnavailable(
                f"Redis key {self.key} holds a non-numeric value: {value!r}"
            ) from e

    async def incr(self) -> int:
        """Atomically increment the counter and return the new value."""
        return int(await self._call("INCR", self.client.incr(self.key)))

    async def decr(self) -> int:
        """Atomically decrement the counter and return the new value."""
        return int(await self._call("DECR", self.client.decr(self.key)))

    async def set(self, value: int) -> None:
        """Overwrite the counter."""
        await self._call("SET", self.client.set(self.key, value))

    async def seed(self, value: int) -> bool:
        """
        Set the counter only if the key does not exist yet (SET NX).

        Returns:
            True if the key was created, False if it already held a value
        """
        return bool(await self._call("SET NX", self.client.set(self.key, value, nx=True)))

    async def ping(self) -> bool:
        """Check the connection; never raises."""
        try:
            return bool(await self._call("PING", self.client.ping()))
        except RemoteStoreUnavailable as e:
            logger.debug(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        try:
            await self.client.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
