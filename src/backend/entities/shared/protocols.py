"""Protocol interfaces for I/O boundaries.

These protocols enable dependency injection for testability.
Production implementations wrap the OpenAI SDK and Redis; test fakes
return canned data with zero network access.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

from models import AssistantRef, ExpiredThread, RemoteMessage, RunHandle, RunStatus


@runtime_checkable
class RemoteAssistantClient(Protocol):
    """Client for the remote Assistants API.

    Implementations translate transport failures into
    ``RemoteUnavailableError`` and unknown threads into
    ``ThreadNotFoundError``.
    """

    async def retrieve_assistant(self, assistant_id: str) -> AssistantRef:
        """Look up the assistant that will answer chat turns."""
        ...

    async def create_thread_with_message(self, assistant_id: str, text: str) -> RunHandle:
        """Create a thread seeded with *text* and immediately start a run on it.

        Returns:
            Handle carrying the new thread id and run id.
        """
        ...

    async def append_message(self, thread_id: str, text: str) -> None:
        """Add a user message to an existing thread."""
        ...

    async def start_run(self, thread_id: str, assistant_id: str) -> str:
        """Start a run on *thread_id* and return the run id."""
        ...

    async def get_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        """Return the current normalized status of a run."""
        ...

    async def list_runs(self, thread_id: str) -> list[RunHandle]:
        """Return the runs recorded on a thread, most recent first."""
        ...

    async def list_messages(self, thread_id: str) -> list[RemoteMessage]:
        """Return the thread's messages, most recent first."""
        ...

    async def delete_thread(self, thread_id: str) -> None:
        """Delete a thread. Deleting an unknown thread is not an error."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


@runtime_checkable
class SessionThreadStore(Protocol):
    """Session id → remote thread id mapping with a sliding idle TTL.

    The store never talks to the remote service. Entries that expire or
    are evicted are queued and handed out once by ``pop_expired`` so the
    caller can delete their remote threads.
    """

    async def get(self, session_id: str) -> str | None:
        """Return the live thread id and refresh its idle timer, or None."""
        ...

    async def put(self, session_id: str, thread_id: str, ttl_seconds: float | None = None) -> None:
        """Insert or overwrite the mapping and reset its idle timer."""
        ...

    async def remove(self, session_id: str) -> str | None:
        """Delete the mapping and return the thread id it held, if any."""
        ...

    async def pop_expired(self) -> list[ExpiredThread]:
        """Collect entries dropped by expiry/eviction since the last call."""
        ...


@runtime_checkable
class SessionLockProvider(Protocol):
    """Mutual exclusion keyed by session id."""

    def hold(self, session_id: str) -> AbstractAsyncContextManager[None]:
        """Return a context manager that holds the session's lock while entered."""
        ...
