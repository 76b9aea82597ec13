"""Shared clients for remote services."""

from .assistants_client import (
    OpenAIAssistantsClient,
    create_assistants_client,
    create_openai_client,
)

__all__ = ["OpenAIAssistantsClient", "create_assistants_client", "create_openai_client"]
