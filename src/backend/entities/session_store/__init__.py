"""Session → remote thread stores."""

from config.settings import Settings
from entities.shared.protocols import SessionThreadStore
from redis.asyncio import Redis

from .memory import InMemorySessionThreadStore
from .redis_store import RedisSessionThreadStore


def create_session_store(settings: Settings, redis: Redis | None = None) -> SessionThreadStore:
    """Build the store selected by ``SESSION_STORE_BACKEND``.

    Args:
        settings: Application settings.
        redis: Shared Redis client; required for the ``redis`` backend.
    """
    if settings.session_store_backend == "redis":
        if redis is None:
            raise ValueError("A Redis client is required for SESSION_STORE_BACKEND=redis")
        return RedisSessionThreadStore(
            redis,
            prefix=settings.session_key_prefix,
            ttl_seconds=settings.session_ttl_seconds,
        )
    return InMemorySessionThreadStore(
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions=settings.max_session_cache_size,
    )


__all__ = [
    "InMemorySessionThreadStore",
    "RedisSessionThreadStore",
    "create_session_store",
]
