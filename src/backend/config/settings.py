"""Centralized application settings loaded from environment variables.

All configuration is defined once here. Other modules should import
``get_settings()`` rather than calling ``os.getenv()`` directly.
"""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide configuration backed by environment variables.

    Field names are **lowercased** versions of the env-var names.
    ``pydantic-settings`` maps them automatically (case-insensitive).

    Example::

        settings = Settings()  # reads .env + real env
        assistant_id = settings.openai_assistant_id
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- Assistants API ----------------------------------------------------

    openai_api_key: str | None = None
    """API key for the Assistants API. Unused when Entra ID auth is active."""

    openai_assistant_id: str = ""
    """Remote assistant that answers every chat turn."""

    azure_openai_endpoint: str | None = None
    """Azure OpenAI resource endpoint (None → public OpenAI endpoint)."""

    azure_openai_api_version: str = "2024-05-01-preview"
    """API version sent to Azure OpenAI."""

    azure_client_id: str | None = None
    """Managed-identity client ID (None → system-assigned)."""

    # -- Secrets -----------------------------------------------------------

    azure_key_vault_endpoint: str | None = None
    """Key Vault holding ``OpenAI-ApiKey`` / ``OpenAI-AssistantId``."""

    # -- Sessions ----------------------------------------------------------

    session_ttl_seconds: int = 30 * 60
    """Sliding idle window after which a session's thread is reclaimed."""

    max_session_cache_size: int = 1000
    """Upper bound on sessions held by the in-memory store."""

    session_store_backend: Literal["memory", "redis"] = "memory"
    """Where the session → thread mapping lives."""

    session_lock_backend: Literal["local", "redis"] = "local"
    """Per-session exclusion scope: this process, or all instances via Redis."""

    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL for the redis store / lock backends."""

    session_key_prefix: str = "chat-session"
    """Prefix for every Redis key written by the session store."""

    thread_mode: Literal["continuous", "per_turn"] = "continuous"
    """Reuse one remote thread per session, or start fresh on every message."""

    # -- Runs --------------------------------------------------------------

    run_poll_interval_ms: int = 100
    """Delay between run status polls."""

    request_timeout_seconds: float = 120.0
    """Deadline for a single chat turn, measured from request arrival."""

    reaper_interval_seconds: float = 60.0
    """How often expired sessions are swept and their threads deleted."""

    # -- Operational -------------------------------------------------------

    cors_allow_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    """Origins allowed by the CORS middleware."""

    enable_instrumentation: bool = False
    """Enable Application Insights tracing."""

    applicationinsights_connection_string: str | None = None
    """App Insights connection string (None → tracing disabled)."""


def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Uses ``lru_cache`` semantics via a module-level singleton so the
    ``.env`` file is read at most once per process.

    Returns:
        The global ``Settings`` object.
    """
    return _settings


_settings = Settings()
