"""
In-process session → thread store.

Suitable for a single instance. Entries slide: every hit pushes the
expiry out by the entry's TTL. Entries that expire or are evicted to
respect the size cap are kept in a retired queue until the reaper
collects them, so no remote thread is forgotten.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from models import ExpiredThread

logger = logging.getLogger(__name__)

# Session TTL: 30 minutes
SESSION_TTL_SECONDS = 30 * 60

# Maximum number of cached sessions (LRU eviction when exceeded)
MAX_SESSIONS = 1000


@dataclass
class _Entry:
    thread_id: str
    last_access: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.last_access > self.ttl_seconds


class InMemorySessionThreadStore:
    """``SessionThreadStore`` backed by an ``OrderedDict`` in LRU order.

    Args:
        ttl_seconds: Default sliding idle window for new entries.
        max_sessions: Size cap; least recently used entries are retired beyond it.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        max_sessions: int = MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._retired: list[ExpiredThread] = []
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, session_id: str) -> str | None:
        """
        Get the thread for a session, refreshing its idle timer.

        Args:
            session_id: The client session ID

        Returns:
            The thread ID or None if not found/expired
        """
        if not session_id:
            return None

        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None

            now = self._clock()
            if entry.is_expired(now):
                self._retire_unlocked(session_id)
                logger.info("Session expired for session_id=%s", session_id)
                return None

            entry.last_access = now
            self._entries.move_to_end(session_id)
            return entry.thread_id

    async def put(self, session_id: str, thread_id: str, ttl_seconds: float | None = None) -> None:
        """
        Store the thread for a session.

        Args:
            session_id: The client session ID
            thread_id: The remote thread ID
            ttl_seconds: Idle window for this entry (defaults to the store's)
        """
        if not session_id:
            return

        with self._lock:
            now = self._clock()
            previous = self._entries.get(session_id)
            if previous is not None and previous.thread_id != thread_id:
                if previous.is_expired(now):
                    # Expired but not yet retired: queue its thread for release
                    self._retire_unlocked(session_id)
                else:
                    logger.warning(
                        "Overwriting live thread %s for session_id=%s without releasing it",
                        previous.thread_id,
                        session_id,
                    )

            self._entries[session_id] = _Entry(
                thread_id=thread_id,
                last_access=now,
                ttl_seconds=self._ttl_seconds if ttl_seconds is None else ttl_seconds,
            )
            self._entries.move_to_end(session_id)
            logger.info(
                "Stored thread %s for session_id=%s (cache size: %d)",
                thread_id,
                session_id,
                len(self._entries),
            )

            # Cleanup old sessions periodically
            self._retire_expired_unlocked(now)

            # Evict oldest entries if over max size
            while len(self._entries) > self._max_sessions:
                evicted_sid = next(iter(self._entries))
                self._retire_unlocked(evicted_sid)
                logger.info("Evicted LRU session: session_id=%s", evicted_sid)

    async def remove(self, session_id: str) -> str | None:
        """Remove a session and return the thread it held."""
        if not session_id:
            return None

        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None:
            return None
        logger.info("Removed thread %s for session_id=%s", entry.thread_id, session_id)
        return entry.thread_id

    async def pop_expired(self) -> list[ExpiredThread]:
        """Return every retired entry once and forget it."""
        with self._lock:
            self._retire_expired_unlocked(self._clock())
            retired, self._retired = self._retired, []
        return retired

    def _retire_unlocked(self, session_id: str) -> None:
        """Move an entry to the retired queue (must hold lock)."""
        entry = self._entries.pop(session_id)
        self._retired.append(ExpiredThread(session_id=session_id, thread_id=entry.thread_id))

    def _retire_expired_unlocked(self, now: float) -> None:
        """Retire all expired entries (must hold lock)."""
        expired = [sid for sid, entry in self._entries.items() if entry.is_expired(now)]
        for sid in expired:
            self._retire_unlocked(sid)

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
