"""Background reclamation of remote threads for expired sessions.

The session store drops idle entries on its own but never talks to the
remote service. The reaper periodically collects those entries and
deletes their remote threads so expiry does not leak them.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import Protocol

from entities.shared.protocols import SessionThreadStore

logger = logging.getLogger(__name__)

REAPER_INTERVAL_SECONDS = 60.0


class ThreadReleaser(Protocol):
    """Best-effort thread deletion (``RunOrchestrator.release_expired_thread``)."""

    def __call__(self, thread_id: str, *, session_id: str, stage: str) -> Awaitable[bool]: ...


class SessionReaper:
    """Periodic sweep over ``SessionThreadStore.pop_expired``.

    Args:
        store: Store whose expired entries are reclaimed.
        release: Deletes one remote thread once no turn is using it; returns
            False when it leaked.
        interval_seconds: Delay between sweeps.
    """

    def __init__(
        self,
        store: SessionThreadStore,
        release: ThreadReleaser,
        interval_seconds: float = REAPER_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._release = release
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background sweep loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="session-reaper")
        logger.info("Session reaper started (interval=%ss)", self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Session reaper stopped")

    async def sweep(self) -> int:
        """Release the threads of every expired session once.

        Returns:
            Number of threads deleted.
        """
        expired = await self._store.pop_expired()
        released = 0
        for item in expired:
            if await self._release(item.thread_id, session_id=item.session_id, stage="reaper"):
                released += 1
        if expired:
            logger.info("Reaper released %d of %d expired thread(s)", released, len(expired))
        return released

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session reaper sweep failed")
