"""RunOrchestrator: drives chat turns against the remote Assistants API.

One turn: resolve the session's thread, submit the message, poll the
remote run until it is terminal, read the reply. Session teardown
removes the mapping and deletes the remote thread.

Every turn and teardown runs under the session's lock and inside
``asyncio.timeout_at(deadline)``, so the deadline also bounds waiting for
the lock and any in-flight remote call. When the deadline fires the run
is left running remotely.
"""

import asyncio
import logging
from dataclasses import dataclass

from entities.run_orchestrator.locks import SessionLocks
from entities.shared.errors import (
    ChatCanceledError,
    ChatError,
    RemoteRunFailedError,
    ThreadNotFoundError,
)
from entities.shared.protocols import (
    RemoteAssistantClient,
    SessionLockProvider,
    SessionThreadStore,
)
from models import AssistantRef, RunHandle, RunStatus, ThreadMode

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response received."
"""Reply used when a completed run left no readable assistant text."""

POLL_INTERVAL_SECONDS = 0.1


@dataclass
class _TurnState:
    """Where a turn is, for failure logs."""

    session_id: str
    stage: str = "start"


class RunOrchestrator:
    """Maps sessions onto remote threads and runs chat turns on them.

    Args:
        remote: Assistants API client.
        store: Session → thread mapping.
        assistant_id: Remote assistant answering every turn.
        session_ttl_seconds: Idle window for new mappings (None → store default).
        poll_interval_seconds: Delay between run status polls.
        thread_mode: ``CONTINUOUS`` keeps one thread per session across turns;
            ``PER_TURN`` creates a thread per message and deletes it after the reply.
        locks: Per-session lock provider (defaults to in-process locks).
    """

    def __init__(
        self,
        remote: RemoteAssistantClient,
        store: SessionThreadStore,
        *,
        assistant_id: str,
        session_ttl_seconds: float | None = None,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        thread_mode: ThreadMode = ThreadMode.CONTINUOUS,
        locks: SessionLockProvider | None = None,
    ) -> None:
        if not assistant_id:
            raise ValueError("assistant_id is required")
        self._remote = remote
        self._store = store
        self._assistant_id = assistant_id
        self._session_ttl_seconds = session_ttl_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._thread_mode = ThreadMode(thread_mode)
        self._locks = locks if locks is not None else SessionLocks()

        logger.info(
            "RunOrchestrator created (assistant_id=%s, thread_mode=%s)",
            assistant_id,
            self._thread_mode,
        )

    @property
    def thread_mode(self) -> ThreadMode:
        return self._thread_mode

    async def verify_assistant(self) -> AssistantRef:
        """Fetch the configured assistant; fails fast on a bad id or credential."""
        assistant = await self._remote.retrieve_assistant(self._assistant_id)
        logger.info(
            "Using assistant %s (name=%s, model=%s)",
            assistant.assistant_id,
            assistant.name,
            assistant.model,
        )
        return assistant

    async def process_message(
        self,
        session_id: str,
        text: str,
        deadline: float | None = None,
    ) -> str:
        """Run one chat turn and return the assistant's reply.

        Args:
            session_id: Client session identifier.
            text: User message.
            deadline: Absolute ``loop.time()`` by which the turn must finish,
                or None for no deadline.

        Returns:
            Reply text, or ``NO_RESPONSE_TEXT`` when the run produced none.

        Raises:
            ChatCanceledError: The deadline elapsed first.
            RemoteRunFailedError: The run ended failed or canceled.
            RemoteUnavailableError: The remote service could not be reached.
        """
        turn = _TurnState(session_id=session_id)
        logger.info("Processing chat message for session_id=%s", session_id)
        if _deadline_passed(deadline):
            logger.warning("Deadline already elapsed for session_id=%s", session_id)
            raise ChatCanceledError(
                "Deadline elapsed before the turn started", session_id=session_id, stage=turn.stage
            )

        timeout = asyncio.timeout_at(deadline)
        try:
            async with timeout:
                turn.stage = "acquire_session"
                async with self._locks.hold(session_id):
                    reply = await self._run_turn(turn, text)
        except TimeoutError as e:
            if not timeout.expired():
                raise
            logger.warning(
                "Chat turn canceled for session_id=%s at stage=%s: deadline elapsed",
                session_id,
                turn.stage,
            )
            raise ChatCanceledError(
                "Deadline elapsed before the turn finished",
                session_id=session_id,
                stage=turn.stage,
            ) from e
        except asyncio.CancelledError:
            logger.warning(
                "Chat turn canceled by caller for session_id=%s at stage=%s",
                session_id,
                turn.stage,
            )
            raise
        except ChatError as e:
            e.session_id = e.session_id or session_id
            e.stage = e.stage or turn.stage
            logger.error(
                "Chat turn failed for session_id=%s at stage=%s: %s",
                session_id,
                turn.stage,
                e,
                exc_info=True,
            )
            raise
        except Exception:
            logger.exception(
                "Unexpected error for session_id=%s at stage=%s", session_id, turn.stage
            )
            raise

        logger.info("Successfully processed chat message for session_id=%s", session_id)
        return reply

    async def end_session(self, session_id: str, deadline: float | None = None) -> None:
        """End a session: drop its mapping and delete its remote thread.

        Ending an unknown or already-ended session succeeds without any
        remote call.

        Raises:
            ChatCanceledError: The deadline elapsed first.
            RemoteUnavailableError: The thread could not be deleted. The mapping
                is put back so a retry or the reaper can release it.
        """
        logger.info("Ending chat session for session_id=%s", session_id)
        if _deadline_passed(deadline):
            raise ChatCanceledError(
                "Deadline elapsed before the session ended",
                session_id=session_id,
                stage="end_session",
            )

        timeout = asyncio.timeout_at(deadline)
        try:
            async with timeout:
                async with self._locks.hold(session_id):
                    thread_id = await self._store.remove(session_id)
                    if thread_id is None:
                        logger.info("No thread for session_id=%s; nothing to delete", session_id)
                        return
                    try:
                        await self._remote.delete_thread(thread_id)
                    except (Exception, asyncio.CancelledError):
                        await self._restore_mapping(session_id, thread_id)
                        raise
        except TimeoutError as e:
            if not timeout.expired():
                raise
            raise ChatCanceledError(
                "Deadline elapsed before the session ended",
                session_id=session_id,
                stage="end_session",
            ) from e
        except ChatError as e:
            e.session_id = e.session_id or session_id
            e.stage = e.stage or "end_session"
            logger.error("Error ending chat session for session_id=%s: %s", session_id, e)
            raise

        logger.info("Chat session successfully ended for session_id=%s", session_id)

    async def release_thread(self, thread_id: str, *, session_id: str, stage: str) -> bool:
        """Best-effort remote thread deletion.

        Returns:
            True if the thread is gone, False if it leaked (already logged).
        """
        try:
            await self._remote.delete_thread(thread_id)
        except ChatError:
            _log_leak(thread_id, session_id, stage)
            return False
        return True

    async def release_expired_thread(self, thread_id: str, *, session_id: str, stage: str) -> bool:
        """Release the thread of an expired or evicted session.

        Waits for the session lock, so a turn still running on the thread
        finishes before the thread is deleted.
        """
        async with self._locks.hold(session_id):
            return await self.release_thread(thread_id, session_id=session_id, stage=stage)

    async def _restore_mapping(self, session_id: str, thread_id: str) -> None:
        try:
            await self._store.put(session_id, thread_id, self._session_ttl_seconds)
        except Exception:
            _log_leak(thread_id, session_id, "end_session")
            return
        logger.warning(
            "Could not delete thread %s for session_id=%s; mapping kept for retry",
            thread_id,
            session_id,
        )

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    async def _run_turn(self, turn: _TurnState, text: str) -> str:
        if self._thread_mode is ThreadMode.PER_TURN:
            handle = await self._start_fresh_turn(turn, text)
        else:
            handle = await self._start_continuous_turn(turn, text)

        turn.stage = "poll"
        status = await self._wait_for_run(handle.thread_id, handle.run_id)
        if status is not RunStatus.COMPLETED:
            raise RemoteRunFailedError(
                f"Run {handle.run_id} on thread {handle.thread_id} ended {status}",
                status=status,
                session_id=turn.session_id,
                stage=turn.stage,
            )

        turn.stage = "read_reply"
        reply = await self._read_reply(handle.thread_id)

        if self._thread_mode is ThreadMode.PER_TURN:
            turn.stage = "cleanup"
            await self._store.remove(turn.session_id)
            await self.release_thread(handle.thread_id, session_id=turn.session_id, stage="cleanup")

        return reply

    async def _start_continuous_turn(self, turn: _TurnState, text: str) -> RunHandle:
        """Reuse the session's thread, or create one on first contact."""
        turn.stage = "resolve_thread"
        thread_id = await self._store.get(turn.session_id)
        if thread_id is None:
            return await self._create_thread(turn, text)

        logger.info("Returning thread ID %s for session_id=%s", thread_id, turn.session_id)
        try:
            # An earlier turn abandoned at its deadline may still be running.
            turn.stage = "await_active_runs"
            await self._wait_for_active_runs(thread_id)

            turn.stage = "submit"
            await self._remote.append_message(thread_id, text)
            run_id = await self._remote.start_run(thread_id, self._assistant_id)
        except ThreadNotFoundError:
            logger.warning(
                "Thread %s for session_id=%s no longer exists remotely; starting a new one",
                thread_id,
                turn.session_id,
            )
            await self._store.remove(turn.session_id)
            return await self._create_thread(turn, text)

        return RunHandle(thread_id=thread_id, run_id=run_id)

    async def _start_fresh_turn(self, turn: _TurnState, text: str) -> RunHandle:
        """Create a new thread for this message, releasing any stale one first."""
        turn.stage = "release_stale_thread"
        stale_thread_id = await self._store.remove(turn.session_id)
        if stale_thread_id is not None:
            await self.release_thread(
                stale_thread_id, session_id=turn.session_id, stage=turn.stage
            )
        return await self._create_thread(turn, text)

    async def _create_thread(self, turn: _TurnState, text: str) -> RunHandle:
        turn.stage = "create_thread"
        logger.info(
            "Creating new thread for session_id=%s (assistant_id=%s)",
            turn.session_id,
            self._assistant_id,
        )
        handle = await self._remote.create_thread_with_message(self._assistant_id, text)

        turn.stage = "store_thread"
        try:
            await self._store.put(turn.session_id, handle.thread_id, self._session_ttl_seconds)
        except (Exception, asyncio.CancelledError):
            _log_leak(handle.thread_id, turn.session_id, turn.stage)
            raise
        return handle

    async def _wait_for_run(self, thread_id: str, run_id: str) -> RunStatus:
        """Poll a run until it reaches a terminal status."""
        while True:
            status = await self._remote.get_run_status(thread_id, run_id)
            if status.is_terminal:
                logger.info("Run %s on thread %s finished: %s", run_id, thread_id, status)
                return status
            logger.debug("Waiting for run %s on thread %s (%s)", run_id, thread_id, status)
            await asyncio.sleep(self._poll_interval_seconds)

    async def _wait_for_active_runs(self, thread_id: str) -> None:
        for run in await self._remote.list_runs(thread_id):
            if not run.status.is_terminal:
                logger.info("Waiting for active run %s on thread %s", run.run_id, thread_id)
                await self._wait_for_run(thread_id, run.run_id)

    async def _read_reply(self, thread_id: str) -> str:
        """Return the primary text of the newest message on the thread."""
        messages = await self._remote.list_messages(thread_id)
        latest = messages[0] if messages else None
        if latest is None or latest.role == "user" or not latest.text:
            logger.warning("No assistant reply found on thread %s", thread_id)
            return NO_RESPONSE_TEXT
        return latest.text


def _log_leak(thread_id: str, session_id: str, stage: str) -> None:
    logger.warning(
        "Resource leak: thread %s for session_id=%s was not deleted (stage=%s)",
        thread_id,
        session_id,
        stage,
        exc_info=True,
    )


def _deadline_passed(deadline: float | None) -> bool:
    return deadline is not None and deadline <= asyncio.get_running_loop().time()
