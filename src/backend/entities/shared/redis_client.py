"""
Redis helper utilities for the session layer.

Central place to construct the Redis client plus small helpers for
JSON-style key access, so the store and lock backends do not duplicate
this logic.
"""

from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis


def create_redis_client(redis_url: str) -> Redis:
    """
    Return a Redis client for *redis_url*.

    Responses are decoded to ``str``. The driver is fully async and
    should be awaited by callers.
    """
    return Redis.from_url(redis_url, decode_responses=True)


def loads_json(raw: str | None) -> Any | None:  # noqa: ANN401
    """
    Parse a JSON payload read from Redis.
    Returns None on missing or malformed payload.
    """
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


async def redis_get_json(redis: Redis, key: str) -> Any | None:  # noqa: ANN401
    """
    Convenience wrapper that loads a JSON value from Redis.
    Returns None on missing key or malformed payload.
    """
    return loads_json(await redis.get(key))


async def redis_set_json(
    redis: Redis, key: str, value: Any, *, ttl_seconds: int | None = None  # noqa: ANN401
) -> None:
    """
    Store a JSON-serialisable value under the given key with optional TTL.
    """
    data = json.dumps(value, ensure_ascii=False)
    if ttl_seconds is not None:
        await redis.set(key, data, ex=ttl_seconds)
    else:
        await redis.set(key, data)


__all__ = ["create_redis_client", "loads_json", "redis_get_json", "redis_set_json"]
