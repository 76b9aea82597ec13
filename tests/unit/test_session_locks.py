"""Tests for per-session locking."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from entities.run_orchestrator import RedisSessionLocks, SessionLocks
from redis.exceptions import LockError


class TestSessionLocks:
    async def test_same_session_is_serialized(self) -> None:
        locks = SessionLocks()
        order: list[str] = []

        async def turn(name: str) -> None:
            async with locks.hold("s1"):
                order.append(f"{name}:start")
                await asyncio.sleep(0.01)
                order.append(f"{name}:end")

        await asyncio.gather(turn("a"), turn("b"))

        assert order == ["a:start", "a:end", "b:start", "b:end"]

    async def test_different_sessions_do_not_block(self) -> None:
        locks = SessionLocks()
        inside = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("s1"):
                await inside.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)

        async with asyncio.timeout(1):
            async with locks.hold("s2"):
                inside.set()
        await task

    async def test_idle_locks_are_dropped(self) -> None:
        locks = SessionLocks()

        async with locks.hold("s1"):
            assert len(locks) == 1

        assert len(locks) == 0

    async def test_lock_released_on_error(self) -> None:
        locks = SessionLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("s1"):
                raise RuntimeError("boom")

        assert len(locks) == 0
        async with asyncio.timeout(1):
            async with locks.hold("s1"):
                pass


def _mock_redis() -> tuple[MagicMock, MagicMock]:
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    redis = MagicMock()
    redis.lock = MagicMock(return_value=lock)
    return redis, lock


class TestRedisSessionLocks:
    async def test_acquires_and_releases_named_lock(self) -> None:
        redis, lock = _mock_redis()
        locks = RedisSessionLocks(redis, prefix="test-chat", lock_timeout_seconds=150)

        async with locks.hold("s1"):
            lock.acquire.assert_awaited_once()
            lock.release.assert_not_awaited()

        lock.release.assert_awaited_once()
        args, kwargs = redis.lock.call_args
        assert args == ("test-chat:lock:s1",)
        assert kwargs["timeout"] == 150

    async def test_release_error_is_logged(self, caplog) -> None:
        redis, lock = _mock_redis()
        lock.release.side_effect = LockError("expired")
        locks = RedisSessionLocks(redis)

        with caplog.at_level(logging.WARNING):
            async with locks.hold("s1"):
                pass

        assert "expired before release" in caplog.text

    async def test_release_on_error_in_block(self) -> None:
        redis, lock = _mock_redis()
        locks = RedisSessionLocks(redis)

        with pytest.raises(RuntimeError):
            async with locks.hold("s1"):
                raise RuntimeError("boom")

        lock.release.assert_awaited_once()
