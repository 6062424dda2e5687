"""
Counter state store.

The local record is the source of truth for the voter set and the event
text. When a remote counter is configured and reachable it is the source of
truth for the numeric count; otherwise the local count is used. After every
remote increment the local record mirrors the returned count, so a later
fallback continues from the last value the remote reported.
"""
import asyncio
import logging
from typing import Optional, Union

from prometheus_client import Counter

from .errors import RemoteStoreUnavailable, StorageReadError, StorageWriteError
from .models import CounterState
from .storage import JsonFileStorage, MemoryStorage, RemoteCounter

logger = logging.getLogger(__name__)

storage_fallbacks = Counter(
    "counter_storage_fallbacks_total",
    "Number of times the remote counter failed and local storage was used",
    ["operation"]
)
storage_read_failures = Counter(
    "counter_storage_read_failures_total",
    "Number of unreadable local records replaced by the default state"
)

LocalStorage = Union[JsonFileStorage, MemoryStorage]


class StateStore:
    """Owns the persisted CounterState and every mutation of it."""

    def __init__(
        self,
        local: LocalStorage,
        remote: Optional[RemoteCounter] = None,
        track_voters: bool = False
    ):
        """
        Args:
            local: Local durable backend (voters, event text, fallback count)
            remote: Optional remote counter (authoritative count when reachable)
            track_voters: Record voter keys and refuse repeat increments
        """
        self.local = local
        self.remote = remote
        self.track_voters = track_voters
        self._lock = asyncio.Lock()

    async def _read_local(self) -> CounterState:
        try:
            return await asyncio.to_thread(self.local.read)
        except StorageReadError as e:
            storage_read_failures.inc()
            logger.warning(f"Using default state: {e}")
            return self.local.default_state()

    async def _write_local(self, state: CounterState) -> None:
        await asyncio.to_thread(self.local.write, state)

    async def _remote_count(self) -> Optional[int]:
        if self.remote is None:
            return None
        try:
            return await self.remote.get()
        except RemoteStoreUnavailable as e:
            storage_fallbacks.labels(operation="get").inc()
            logger.warning(f"Remote counter unavailable, using local count: {e}")
            return None

    async def ensure_initialized(self) -> None:
        """Write the default record if none exists yet."""
        if not self.local.exists():
            await self._write_local(self.local.default_state())
            logger.info(f"Initialized counter record at {self.local!r}")

    async def get(self) -> CounterState:
        """
        Return the current state.

        Never fails on read problems: a missing or corrupt local record is
        replaced by the default state, and an unreachable remote counter by
        the local count.
        """
        state = await self._read_local()
        remote_count = await self._remote_count()
        if remote_count is not None:
            state.count = remote_count
        return state

    async def has_voter(self, voter_key: Optional[str]) -> bool:
        """Whether voter_key is already credited with a click."""
        if not self.track_voters or voter_key is None:
            return False
        state = await self._read_local()
        return voter_key in state.voters

    async def generation(self) -> int:
        """Current reset generation of the local record."""
        state = await self._read_local()
        return state.generation

    async def increment(self, voter_key: Optional[str] = None) -> int:
        """
        Count one click.

        Args:
            voter_key: Client identity; only used when voter tracking is on

        Returns:
            The count after the click, or the unchanged count if voter_key
            has already been credited

        Raises:
            StorageWriteError: If the local record cannot be written; a remote
                increment made for this click is undone first
        """
        async with self._lock:
            state = await self._read_local()

            if self.track_voters and voter_key is not None:
                if voter_key in state.voters:
                    remote_count = await self._remote_count()
                    return state.count if remote_count is None else remote_count
                state.voters.add(voter_key)

            count = None
            if self.remote is not None:
                try:
                    # A missing key (flushed or evicted) restarts from the local count
                    if await self.remote.seed(state.count):
                        logger.info(f"Seeded remote counter with local count {state.count}")
                    count = await self.remote.incr()
                except RemoteStoreUnavailable as e:
                    storage_fallbacks.labels(operation="incr").inc()
                    logger.warning(f"Remote increment failed, incrementing locally: {e}")

            state.count = state.count + 1 if count is None else count
            try:
                await self._write_local(state)
            except StorageWriteError:
                if count is not None:
                    await self._undo_remote_increment()
                raise
            return state.count

    async def _undo_remote_increment(self) -> None:
        try:
            await self.remote.decr()
        except RemoteStoreUnavailable as e:
            storage_fallbacks.labels(operation="decr").inc()
            logger.error(f"Could not undo remote increment after a failed local write: {e}")

    async def reset(self) -> int:
        """
        Set the count to 0, forget all voters and start a new generation.

        Event text is kept.
        """
        async with self._lock:
            state = await self._read_local()
            state.count = 0
            state.voters.clear()
            state.generation += 1

            if self.remote is not None:
                try:
                    await self.remote.set(0)
                except RemoteStoreUnavailable as e:
                    storage_fallbacks.labels(operation="reset").inc()
                    logger.warning(f"Remote reset failed, only local count was reset: {e}")

            await self._write_local(state)
            logger.info(f"Counter reset, generation {state.generation}")
            return 0

    async def set_event_text(self, text: str) -> str:
        """Overwrite the event text. The text is stored as given."""
        async with self._lock:
            state = await self._read_local()
            state.event_text = text
            await self._write_local(state)
            return text

    async def check_health(self) -> dict:
        """Status of each backend, for the health endpoint."""
        services = {
            "local_file": "writable" if self.local.check_writable() else "read_only"
        }
        if self.remote is not None:
            services["redis"] = "connected" if await self.remote.ping() else "disconnected"
        return services

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
