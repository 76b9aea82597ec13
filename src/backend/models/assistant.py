"""
Remote assistant models.

These types describe what the service knows about objects owned by
the remote Assistants API: assistants, threads, runs and messages.
The service never stores thread contents, only identifiers.
"""

from dataclasses import dataclass
from enum import StrEnum


class RunStatus(StrEnum):
    """Normalized status of a remote run."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """True once the run can no longer change state."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELED})


class ThreadMode(StrEnum):
    """How a session maps onto remote threads."""

    CONTINUOUS = "continuous"
    """One thread per session, reused across turns for multi-turn context."""

    PER_TURN = "per_turn"
    """A fresh thread per message, deleted once the reply is read."""


@dataclass(frozen=True)
class AssistantRef:
    """Identity of the remote assistant answering chat turns."""

    assistant_id: str
    name: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class RunHandle:
    """A remote run on a remote thread."""

    thread_id: str
    run_id: str
    status: RunStatus = RunStatus.QUEUED


@dataclass(frozen=True)
class RemoteMessage:
    """A message read back from a remote thread."""

    message_id: str
    role: str
    text: str | None = None
    """Primary text segment, or None when the message carries no text."""


@dataclass(frozen=True)
class ExpiredThread:
    """A session entry the store dropped without releasing its thread."""

    session_id: str
    thread_id: str
