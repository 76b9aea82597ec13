"""Shared building blocks: error types, protocols and remote clients."""

from .clients import OpenAIAssistantsClient, create_assistants_client, create_openai_client
from .errors import (
    ChatCanceledError,
    ChatError,
    RemoteRunFailedError,
    RemoteUnavailableError,
    ThreadNotFoundError,
)

__all__ = [
    "ChatCanceledError",
    "ChatError",
    "OpenAIAssistantsClient",
    "RemoteRunFailedError",
    "RemoteUnavailableError",
    "ThreadNotFoundError",
    "create_assistants_client",
    "create_openai_client",
]
