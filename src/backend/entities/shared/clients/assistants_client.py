"""
Assistants API client built on the OpenAI SDK.

Wraps ``AsyncOpenAI`` (or ``AsyncAzureOpenAI`` when an Azure endpoint is
configured) and exposes the small surface the run orchestrator needs.
SDK exceptions are translated into the chat error taxonomy here so no
``openai`` types leak past this module.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.identity.aio import get_bearer_token_provider
from config.secrets import create_credential
from config.settings import Settings
from entities.shared.errors import RemoteUnavailableError, ThreadNotFoundError
from models import AssistantRef, RemoteMessage, RunHandle, RunStatus
from openai import APIError, AsyncAzureOpenAI, AsyncOpenAI, NotFoundError

logger = logging.getLogger(__name__)

_COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"

# Page size for list calls; only the head of each list is ever used.
_LIST_LIMIT = 20

# Remote run status -> normalized status.
# ``requires_action`` counts as failed: tool calls are not supported, so such
# a run would never finish on its own.
_STATUS_MAP: dict[str, RunStatus] = {
    "queued": RunStatus.QUEUED,
    "in_progress": RunStatus.IN_PROGRESS,
    "cancelling": RunStatus.IN_PROGRESS,
    "completed": RunStatus.COMPLETED,
    "cancelled": RunStatus.CANCELED,
    "failed": RunStatus.FAILED,
    "expired": RunStatus.FAILED,
    "incomplete": RunStatus.FAILED,
    "requires_action": RunStatus.FAILED,
}


def normalize_run_status(raw_status: str) -> RunStatus:
    """Map a remote run status onto ``RunStatus``.

    Unknown statuses are treated as still in progress so a new remote
    state never ends a turn early; the caller's deadline bounds the wait.
    """
    status = _STATUS_MAP.get(raw_status)
    if status is None:
        logger.warning("Unknown run status %r; treating as in progress", raw_status)
        return RunStatus.IN_PROGRESS
    return status


def extract_primary_text(message: Any) -> str | None:  # noqa: ANN401
    """Return the first text segment of an SDK message, or None."""
    for part in getattr(message, "content", None) or []:
        if getattr(part, "type", None) != "text":
            continue
        text = getattr(part, "text", None)
        value = getattr(text, "value", None)
        if value:
            return value
    return None


def create_openai_client(
    settings: Settings, credential: AsyncTokenCredential | None = None
) -> AsyncOpenAI:
    """Build the SDK client from settings.

    With ``AZURE_OPENAI_ENDPOINT`` set, authenticates with the API key when
    one is configured and with an Entra ID token from *credential* otherwise.
    """
    if settings.azure_openai_endpoint:
        if settings.openai_api_key:
            return AsyncAzureOpenAI(
                azure_endpoint=settings.azure_openai_endpoint,
                api_key=settings.openai_api_key,
                api_version=settings.azure_openai_api_version,
            )
        if credential is None:
            raise ValueError("A credential is required for Entra ID authentication")
        return AsyncAzureOpenAI(
            azure_endpoint=settings.azure_openai_endpoint,
            azure_ad_token_provider=get_bearer_token_provider(
                credential, _COGNITIVE_SERVICES_SCOPE
            ),
            api_version=settings.azure_openai_api_version,
        )

    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is required when AZURE_OPENAI_ENDPOINT is not set")
    return AsyncOpenAI(api_key=settings.openai_api_key)


def create_assistants_client(settings: Settings) -> "OpenAIAssistantsClient":
    """Build the ``RemoteAssistantClient`` for the configured endpoint.

    The Entra ID credential, when one is needed, is owned by the returned
    client and closed with it.
    """
    credential = None
    if settings.azure_openai_endpoint and not settings.openai_api_key:
        credential = create_credential(settings.azure_client_id)
    return OpenAIAssistantsClient(create_openai_client(settings, credential), credential=credential)


class OpenAIAssistantsClient:
    """
    ``RemoteAssistantClient`` implementation over the OpenAI Assistants API.

    Usage:
        client = create_assistants_client(settings)
        handle = await client.create_thread_with_message(assistant_id, "Hello")
        status = await client.get_run_status(handle.thread_id, handle.run_id)
    """

    def __init__(
        self, client: AsyncOpenAI, *, credential: AsyncTokenCredential | None = None
    ) -> None:
        self._client = client
        self._credential = credential

    @contextmanager
    def _translate_errors(self, operation: str, thread_id: str | None = None) -> Iterator[None]:
        """Re-raise SDK errors as ``RemoteUnavailableError`` / ``ThreadNotFoundError``."""
        try:
            yield
        except NotFoundError as e:
            if thread_id is not None:
                raise ThreadNotFoundError(
                    f"{operation}: thread {thread_id} not found", stage=operation
                ) from e
            raise RemoteUnavailableError(f"{operation}: {e}", stage=operation) from e
        except APIError as e:
            raise RemoteUnavailableError(f"{operation}: {e}", stage=operation) from e

    async def retrieve_assistant(self, assistant_id: str) -> AssistantRef:
        """Look up the assistant by id."""
        with self._translate_errors("retrieve_assistant"):
            assistant = await self._client.beta.assistants.retrieve(assistant_id)
        return AssistantRef(
            assistant_id=assistant.id,
            name=getattr(assistant, "name", None),
            model=getattr(assistant, "model", None),
        )

    async def create_thread_with_message(self, assistant_id: str, text: str) -> RunHandle:
        """Create a thread holding *text* and start a run on it in one call."""
        with self._translate_errors("create_thread_with_message"):
            run = await self._client.beta.threads.create_and_run(
                assistant_id=assistant_id,
                thread={"messages": [{"role": "user", "content": text}]},
            )
        logger.info("Created thread %s with run %s", run.thread_id, run.id)
        return RunHandle(
            thread_id=run.thread_id,
            run_id=run.id,
            status=normalize_run_status(run.status),
        )

    async def append_message(self, thread_id: str, text: str) -> None:
        """Add a user message to an existing thread."""
        with self._translate_errors("append_message", thread_id):
            await self._client.beta.threads.messages.create(
                thread_id,
                role="user",
                content=text,
            )

    async def start_run(self, thread_id: str, assistant_id: str) -> str:
        """Start a run of *assistant_id* on the thread."""
        with self._translate_errors("start_run", thread_id):
            run = await self._client.beta.threads.runs.create(
                thread_id,
                assistant_id=assistant_id,
            )
        logger.info("Started run %s on thread %s", run.id, thread_id)
        return run.id

    async def get_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        """Fetch a run and return its normalized status."""
        with self._translate_errors("get_run_status", thread_id):
            run = await self._client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        return normalize_run_status(run.status)

    async def list_runs(self, thread_id: str) -> list[RunHandle]:
        """Return the thread's most recent runs, newest first."""
        with self._translate_errors("list_runs", thread_id):
            page = await self._client.beta.threads.runs.list(
                thread_id,
                order="desc",
                limit=_LIST_LIMIT,
            )
        return [
            RunHandle(thread_id=thread_id, run_id=run.id, status=normalize_run_status(run.status))
            for run in page.data
        ]

    async def list_messages(self, thread_id: str) -> list[RemoteMessage]:
        """Return the thread's most recent messages, newest first."""
        with self._translate_errors("list_messages", thread_id):
            page = await self._client.beta.threads.messages.list(
                thread_id,
                order="desc",
                limit=_LIST_LIMIT,
            )
        return [
            RemoteMessage(
                message_id=message.id,
                role=str(getattr(message, "role", "")),
                text=extract_primary_text(message),
            )
            for message in page.data
        ]

    async def delete_thread(self, thread_id: str) -> None:
        """Delete a thread; an already-deleted thread is ignored."""
        try:
            await self._client.beta.threads.delete(thread_id)
        except NotFoundError:
            logger.info("Thread %s already deleted", thread_id)
            return
        except APIError as e:
            raise RemoteUnavailableError(
                f"delete_thread: {e}", stage="delete_thread"
            ) from e
        logger.info("Deleted thread %s", thread_id)

    async def close(self) -> None:
        """Close the underlying HTTP client and the credential, if owned."""
        try:
            await self._client.close()
        finally:
            if self._credential is not None:
                await self._credential.close()
