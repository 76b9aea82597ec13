"""Per-session mutual exclusion.

Two messages for the same session must not race on thread creation, so
every turn and every teardown runs while holding its session's lock.
Sessions never block each other.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from redis.asyncio import Redis
from redis.exceptions import LockError

logger = logging.getLogger(__name__)

_LOCK_POLL_SECONDS = 0.05


@dataclass
class _KeyedLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionLocks:
    """In-process lock per session id.

    Locks are reference counted and dropped as soon as nobody holds or
    waits for them, so idle sessions cost nothing.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _KeyedLock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock for *session_id* for the duration of the block."""
        # No await between lookup and insert: safe within one event loop.
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _KeyedLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(session_id) is entry:
                del self._locks[session_id]


class RedisSessionLocks:
    """Session lock shared by every instance using the same Redis.

    The local lock is taken first so coroutines of one process queue up
    locally instead of all polling Redis.

    Args:
        redis: Shared Redis client.
        prefix: Key namespace (``{prefix}:lock:{session_id}``).
        lock_timeout_seconds: Auto-release time in case the holder dies.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        prefix: str = "chat-session",
        lock_timeout_seconds: float = 300.0,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._lock_timeout_seconds = lock_timeout_seconds
        self._local = SessionLocks()

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the distributed lock for *session_id* for the duration of the block."""
        async with self._local.hold(session_id):
            lock = self._redis.lock(
                f"{self._prefix}:lock:{session_id}",
                timeout=self._lock_timeout_seconds,
                sleep=_LOCK_POLL_SECONDS,
            )
            await lock.acquire()
            try:
                yield
            finally:
                try:
                    await lock.release()
                except LockError:
                    logger.warning(
                        "Session lock for session_id=%s expired before release", session_id
                    )
