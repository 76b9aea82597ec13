"""Tests for ``RedisSessionThreadStore`` against an in-process fake Redis."""

from __future__ import annotations

import json

import fakeredis
import pytest
from entities.session_store import RedisSessionThreadStore
from models import ExpiredThread

PREFIX = "test-chat"


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def redis_store(redis, clock) -> RedisSessionThreadStore:
    return RedisSessionThreadStore(redis, prefix=PREFIX, ttl_seconds=600, clock=clock)


class TestRedisGetPut:
    async def test_put_then_get(self, redis_store) -> None:
        await redis_store.put("s1", "thread_1")

        assert await redis_store.get("s1") == "thread_1"

    async def test_key_layout(self, redis_store, redis, clock) -> None:
        await redis_store.put("s1", "thread_1")

        payload = json.loads(await redis.get(f"{PREFIX}:thread:s1"))
        assert payload == {"thread_id": "thread_1", "ttl_seconds": 600}
        assert await redis.zscore(f"{PREFIX}:expiry", "s1") == clock.now + 600
        assert 0 < await redis.ttl(f"{PREFIX}:thread:s1") <= 1200

    async def test_get_unknown_session_returns_none(self, redis_store) -> None:
        assert await redis_store.get("missing") is None

    async def test_get_slides_the_window(self, redis_store, redis, clock) -> None:
        await redis_store.put("s1", "thread_1")
        clock.advance(500)

        assert await redis_store.get("s1") == "thread_1"
        assert await redis.zscore(f"{PREFIX}:expiry", "s1") == clock.now + 600

    async def test_dangling_expiry_marker_is_dropped(self, redis_store, redis) -> None:
        await redis_store.put("s1", "thread_1")
        await redis.delete(f"{PREFIX}:thread:s1")

        assert await redis_store.get("s1") is None
        assert await redis.zscore(f"{PREFIX}:expiry", "s1") is None


class TestRedisExpiry:
    async def test_put_over_expired_entry_retires_old_thread(self, redis_store, clock) -> None:
        await redis_store.put("s1", "thread_1")
        clock.advance(601)

        await redis_store.put("s1", "thread_2")

        assert await redis_store.get("s1") == "thread_2"
        assert await redis_store.pop_expired() == [
            ExpiredThread(session_id="s1", thread_id="thread_1")
        ]

    async def test_expired_session_is_hidden_and_retired(self, redis_store, clock) -> None:
        await redis_store.put("s1", "thread_1")
        clock.advance(601)

        assert await redis_store.get("s1") is None
        assert await redis_store.pop_expired() == [
            ExpiredThread(session_id="s1", thread_id="thread_1")
        ]
        assert await redis_store.pop_expired() == []

    async def test_pop_expired_only_reports_overdue(self, redis_store, clock) -> None:
        await redis_store.put("old", "thread_old", ttl_seconds=10)
        await redis_store.put("new", "thread_new")
        clock.advance(11)

        expired = await redis_store.pop_expired()

        assert expired == [ExpiredThread(session_id="old", thread_id="thread_old")]
        assert await redis_store.get("new") == "thread_new"

    async def test_two_stores_never_report_the_same_thread(self, redis, clock) -> None:
        first = RedisSessionThreadStore(redis, prefix=PREFIX, ttl_seconds=600, clock=clock)
        second = RedisSessionThreadStore(redis, prefix=PREFIX, ttl_seconds=600, clock=clock)
        await first.put("s1", "thread_1")
        clock.advance(601)

        reported = await first.pop_expired() + await second.pop_expired()

        assert reported == [ExpiredThread(session_id="s1", thread_id="thread_1")]

    async def test_malformed_retired_entry_is_skipped(self, redis_store, redis) -> None:
        await redis.rpush(f"{PREFIX}:retired", "not-json")

        assert await redis_store.pop_expired() == []


class TestRedisRemove:
    async def test_remove_returns_thread_and_clears_keys(self, redis_store, redis) -> None:
        await redis_store.put("s1", "thread_1")

        assert await redis_store.remove("s1") == "thread_1"
        assert await redis.exists(f"{PREFIX}:thread:s1") == 0
        assert await redis.zscore(f"{PREFIX}:expiry", "s1") is None

    async def test_remove_unknown_session(self, redis_store) -> None:
        assert await redis_store.remove("missing") is None
