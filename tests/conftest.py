"""Shared test fixtures for the assistant chat service."""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Ensure src/backend/ is on the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "backend"))

from config.settings import Settings
from entities.run_orchestrator import RunOrchestrator
from entities.session_store import InMemorySessionThreadStore
from models import AssistantRef, RemoteMessage, RunHandle, RunStatus, ThreadMode

TEST_ASSISTANT_ID = "asst_test"
FAST_POLL_SECONDS = 0.001

# ---------------------------------------------------------------------------
# Protocol fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced time source for TTL tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteAssistantClient:
    """In-memory fake satisfying the ``RemoteAssistantClient`` protocol.

    Every run walks through ``run_script`` one status per poll and then
    repeats the last status forever. When a run is first reported
    ``COMPLETED`` and ``reply_text`` is not None, an assistant message
    with that text is added to the thread. Every call is recorded in
    ``calls`` as ``(operation, *args)``.

    Set ``failures[operation]`` to an exception to make that operation raise.
    """

    def __init__(
        self,
        run_script: list[RunStatus] | None = None,
        reply_text: str | None = "Hi there",
    ) -> None:
        self.run_script: list[RunStatus] = run_script or [RunStatus.COMPLETED]
        self.reply_text = reply_text
        self.calls: list[tuple[str, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.threads: dict[str, list[RemoteMessage]] = {}
        self.runs: dict[tuple[str, str], list[RunStatus]] = {}
        self.run_order: dict[str, list[str]] = {}
        self.deleted_threads: list[str] = []
        self._replied_runs: set[str] = set()
        self._counter = 0

    def calls_to(self, operation: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == operation]

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _add_message(self, thread_id: str, role: str, text: str | None) -> None:
        message = RemoteMessage(message_id=self._next_id("msg"), role=role, text=text)
        self.threads[thread_id].insert(0, message)

    def _new_run(self, thread_id: str, script: list[RunStatus] | None = None) -> str:
        run_id = self._next_id("run")
        self.runs[(thread_id, run_id)] = list(script or self.run_script)
        self.run_order.setdefault(thread_id, []).insert(0, run_id)
        return run_id

    def add_thread(self, thread_id: str) -> None:
        """Create a thread directly (as if made by an earlier process)."""
        self.threads[thread_id] = []

    def add_active_run(self, thread_id: str, script: list[RunStatus]) -> str:
        """Attach a run following *script* to an existing thread."""
        return self._new_run(thread_id, script)

    async def retrieve_assistant(self, assistant_id: str) -> AssistantRef:
        self._record("retrieve_assistant", assistant_id)
        return AssistantRef(assistant_id=assistant_id, name="Test Assistant", model="gpt-4o")

    async def create_thread_with_message(self, assistant_id: str, text: str) -> RunHandle:
        self._record("create_thread_with_message", assistant_id, text)
        thread_id = self._next_id("thread")
        self.threads[thread_id] = []
        self._add_message(thread_id, "user", text)
        return RunHandle(thread_id=thread_id, run_id=self._new_run(thread_id))

    async def append_message(self, thread_id: str, text: str) -> None:
        self._record("append_message", thread_id, text)
        self._add_message(thread_id, "user", text)

    async def start_run(self, thread_id: str, assistant_id: str) -> str:
        self._record("start_run", thread_id, assistant_id)
        return self._new_run(thread_id)

    async def get_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        self._record("get_run_status", thread_id, run_id)
        script = self.runs[(thread_id, run_id)]
        status = script.pop(0) if len(script) > 1 else script[0]
        if (
            status is RunStatus.COMPLETED
            and self.reply_text is not None
            and run_id not in self._replied_runs
        ):
            self._replied_runs.add(run_id)
            self._add_message(thread_id, "assistant", self.reply_text)
        return status

    async def list_runs(self, thread_id: str) -> list[RunHandle]:
        self._record("list_runs", thread_id)
        return [
            RunHandle(
                thread_id=thread_id,
                run_id=run_id,
                status=self.runs[(thread_id, run_id)][0],
            )
            for run_id in self.run_order.get(thread_id, [])
        ]

    async def list_messages(self, thread_id: str) -> list[RemoteMessage]:
        self._record("list_messages", thread_id)
        return list(self.threads.get(thread_id, []))

    async def delete_thread(self, thread_id: str) -> None:
        self._record("delete_thread", thread_id)
        self.threads.pop(thread_id, None)
        self.deleted_threads.append(thread_id)

    async def close(self) -> None:
        self.calls.append(("close",))


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Return a ``Settings`` instance populated with safe test defaults."""
    return Settings(
        openai_api_key="sk-test",
        openai_assistant_id=TEST_ASSISTANT_ID,
        azure_key_vault_endpoint=None,
        session_ttl_seconds=600,
        run_poll_interval_ms=1,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_remote() -> FakeRemoteAssistantClient:
    """Return a fake whose runs complete on the first poll."""
    return FakeRemoteAssistantClient()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemorySessionThreadStore:
    return InMemorySessionThreadStore(ttl_seconds=600, max_sessions=100, clock=clock)


@pytest.fixture
def orchestrator(
    fake_remote: FakeRemoteAssistantClient,
    memory_store: InMemorySessionThreadStore,
) -> RunOrchestrator:
    """Continuous-mode orchestrator over the fake remote and memory store."""
    return RunOrchestrator(
        fake_remote,
        memory_store,
        assistant_id=TEST_ASSISTANT_ID,
        poll_interval_seconds=FAST_POLL_SECONDS,
        thread_mode=ThreadMode.CONTINUOUS,
    )


@pytest.fixture
def per_turn_orchestrator(
    fake_remote: FakeRemoteAssistantClient,
    memory_store: InMemorySessionThreadStore,
) -> RunOrchestrator:
    """Per-turn-mode orchestrator over the fake remote and memory store."""
    return RunOrchestrator(
        fake_remote,
        memory_store,
        assistant_id=TEST_ASSISTANT_ID,
        poll_interval_seconds=FAST_POLL_SECONDS,
        thread_mode=ThreadMode.PER_TURN,
    )


@pytest.fixture
def settings_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """Clear env vars that would leak into ``Settings()`` built inside a test."""
    for name in (
        "OPENAI_API_KEY",
        "OPENAI_ASSISTANT_ID",
        "AZURE_OPENAI_ENDPOINT",
        "AZURE_KEY_VAULT_ENDPOINT",
        "SESSION_STORE_BACKEND",
        "THREAD_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch
