"""
Redis-backed session → thread store for multi-instance deployments.

Layout (``{p}`` is the configured key prefix):

- ``{p}:thread:{session_id}``: JSON ``{"thread_id", "ttl_seconds"}``
- ``{p}:expiry``: sorted set, member = session id, score = idle deadline
- ``{p}:retired``: list of JSON ``{"session_id", "thread_id"}`` awaiting release

The sorted set is the source of truth for expiry. The thread key also
carries a native Redis TTL of twice the idle window, so data from a
deployment without a running reaper still disappears eventually.
Removing a member from the sorted set is the claim on an entry: only the
caller whose ``ZREM`` succeeds retires it, so concurrent instances never
release the same thread twice.
"""

import json
import logging
import math
import time
from collections.abc import Callable

from entities.shared.redis_client import loads_json, redis_get_json, redis_set_json
from models import ExpiredThread
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = 30 * 60

# Native key TTL = idle window * this factor
_RETENTION_FACTOR = 2


def _retention_seconds(ttl_seconds: float) -> int:
    return max(1, math.ceil(ttl_seconds * _RETENTION_FACTOR))


class RedisSessionThreadStore:
    """``SessionThreadStore`` on ``redis.asyncio``.

    Args:
        redis: Client created with ``decode_responses=True``.
        prefix: Namespace for every key this store writes.
        ttl_seconds: Default sliding idle window for new entries.
        clock: Wall-clock time source shared by all instances (injectable for tests).
    """

    def __init__(
        self,
        redis: Redis,
        *,
        prefix: str = "chat-session",
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._expiry_key = f"{prefix}:expiry"
        self._retired_key = f"{prefix}:retired"

    def _thread_key(self, session_id: str) -> str:
        return f"{self._prefix}:thread:{session_id}"

    async def get(self, session_id: str) -> str | None:
        """Return the live thread for a session and slide its expiry."""
        if not session_id:
            return None

        deadline = await self._redis.zscore(self._expiry_key, session_id)
        if deadline is None:
            return None

        now = self._clock()
        if deadline <= now:
            await self._retire(session_id)
            logger.info("Session expired for session_id=%s", session_id)
            return None

        payload = await redis_get_json(self._redis, self._thread_key(session_id))
        if not payload:
            # Key vanished under us; drop the dangling expiry marker.
            await self._redis.zrem(self._expiry_key, session_id)
            return None

        ttl_seconds = float(payload.get("ttl_seconds", self._ttl_seconds))
        await self._redis.zadd(self._expiry_key, {session_id: now + ttl_seconds})
        await self._redis.expire(self._thread_key(session_id), _retention_seconds(ttl_seconds))
        return payload["thread_id"]

    async def put(self, session_id: str, thread_id: str, ttl_seconds: float | None = None) -> None:
        """Insert or overwrite the mapping and reset its idle timer."""
        if not session_id:
            return

        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        key = self._thread_key(session_id)

        previous = await redis_get_json(self._redis, key)
        previous_deadline = await self._redis.zscore(self._expiry_key, session_id)
        if previous and previous.get("thread_id") != thread_id and previous_deadline is not None:
            if previous_deadline <= now:
                # Expired but not yet retired: queue its thread for release
                await self._retire(session_id)
            else:
                logger.warning(
                    "Overwriting live thread %s for session_id=%s without releasing it",
                    previous.get("thread_id"),
                    session_id,
                )

        await redis_set_json(
            self._redis,
            key,
            {"thread_id": thread_id, "ttl_seconds": ttl},
            ttl_seconds=_retention_seconds(ttl),
        )
        await self._redis.zadd(self._expiry_key, {session_id: now + ttl})
        logger.info("Stored thread %s for session_id=%s", thread_id, session_id)

    async def remove(self, session_id: str) -> str | None:
        """Delete the mapping and return the thread it held."""
        if not session_id:
            return None

        await self._redis.zrem(self._expiry_key, session_id)
        payload = loads_json(await self._redis.getdel(self._thread_key(session_id)))
        if not payload:
            return None
        logger.info("Removed thread %s for session_id=%s", payload["thread_id"], session_id)
        return payload["thread_id"]

    async def pop_expired(self) -> list[ExpiredThread]:
        """Retire every overdue session, then drain the retired queue."""
        overdue = await self._redis.zrangebyscore(self._expiry_key, "-inf", self._clock())
        for session_id in overdue:
            await self._retire(session_id)
        if overdue:
            logger.info("Cleaned up %d expired sessions", len(overdue))

        expired: list[ExpiredThread] = []
        while (raw := await self._redis.lpop(self._retired_key)) is not None:
            item = loads_json(raw)
            if not item:
                logger.warning("Dropping malformed retired entry: %r", raw)
                continue
            expired.append(
                ExpiredThread(session_id=item["session_id"], thread_id=item["thread_id"])
            )
        return expired

    async def _retire(self, session_id: str) -> None:
        """Claim an expired session and queue its thread for release."""
        claimed = await self._redis.zrem(self._expiry_key, session_id)
        if not claimed:
            return

        payload = loads_json(await self._redis.getdel(self._thread_key(session_id)))
        if not payload:
            return
        await self._redis.rpush(
            self._retired_key,
            json.dumps({"session_id": session_id, "thread_id": payload["thread_id"]}),
        )
