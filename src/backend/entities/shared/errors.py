"""Chat error taxonomy.

Every failure the core can surface is a ``ChatError``. The HTTP layer
only distinguishes ``ChatCanceledError``; everything else becomes a
generic server error so remote-service details never reach clients.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for chat failures.

    Args:
        message: Human-readable description (logged, never returned to clients).
        session_id: Session the failure belongs to, when known.
        stage: Turn stage that failed (e.g. ``"submit"``, ``"poll"``).
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.stage = stage


class ChatCanceledError(ChatError):
    """The caller canceled or the deadline elapsed before the turn finished."""


class RemoteRunFailedError(ChatError):
    """The remote run ended in a failed or canceled state."""

    def __init__(self, message: str, *, status: str, **kwargs: str | None) -> None:
        super().__init__(message, **kwargs)
        self.status = status


class RemoteUnavailableError(ChatError):
    """Transport, authentication or API failure talking to the remote service."""


class ThreadNotFoundError(RemoteUnavailableError):
    """The remote service does not know the requested thread."""
