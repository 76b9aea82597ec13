"""Chat turn orchestration, per-session locking and expired-session reaping."""

from config.settings import Settings
from entities.shared.protocols import (
    RemoteAssistantClient,
    SessionLockProvider,
    SessionThreadStore,
)
from models import ThreadMode
from redis.asyncio import Redis

from .locks import RedisSessionLocks, SessionLocks
from .orchestrator import NO_RESPONSE_TEXT, RunOrchestrator
from .reaper import SessionReaper

# Margin on top of the request deadline before a distributed lock self-expires
_LOCK_TIMEOUT_MARGIN_SECONDS = 30.0


def create_session_locks(settings: Settings, redis: Redis | None = None) -> SessionLockProvider:
    """Build the lock provider selected by ``SESSION_LOCK_BACKEND``."""
    if settings.session_lock_backend == "redis":
        if redis is None:
            raise ValueError("A Redis client is required for SESSION_LOCK_BACKEND=redis")
        return RedisSessionLocks(
            redis,
            prefix=settings.session_key_prefix,
            lock_timeout_seconds=settings.request_timeout_seconds + _LOCK_TIMEOUT_MARGIN_SECONDS,
        )
    return SessionLocks()


def create_run_orchestrator(
    settings: Settings,
    remote: RemoteAssistantClient,
    store: SessionThreadStore,
    locks: SessionLockProvider | None = None,
) -> RunOrchestrator:
    """Build a ``RunOrchestrator`` from settings."""
    return RunOrchestrator(
        remote,
        store,
        assistant_id=settings.openai_assistant_id,
        session_ttl_seconds=settings.session_ttl_seconds,
        poll_interval_seconds=settings.run_poll_interval_ms / 1000,
        thread_mode=ThreadMode(settings.thread_mode),
        locks=locks,
    )


__all__ = [
    "NO_RESPONSE_TEXT",
    "RedisSessionLocks",
    "RunOrchestrator",
    "SessionLocks",
    "SessionReaper",
    "create_run_orchestrator",
    "create_session_locks",
]
