"""
Application Insights observability configuration for the chat API.

This module configures Azure Monitor/Application Insights for tracing
requests and the outbound Assistants API calls they trigger.

Settings:
- ENABLE_INSTRUMENTATION: Set to "true" to enable tracing (default: false)
- APPLICATIONINSIGHTS_CONNECTION_STRING: Azure Monitor connection string (required when enabled)
"""

import logging

from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def is_observability_enabled(settings: Settings | None = None) -> bool:
    """Check if OpenTelemetry observability is enabled."""
    return (settings or get_settings()).enable_instrumentation


def configure_observability(settings: Settings | None = None) -> bool:
    """
    Configure Application Insights observability if enabled.

    Requires APPLICATIONINSIGHTS_CONNECTION_STRING to be set.

    Returns:
        True if Azure Monitor was configured.
    """
    settings = settings or get_settings()
    if not is_observability_enabled(settings):
        logger.info("Observability disabled (ENABLE_INSTRUMENTATION != true)")
        return False

    connection_string = settings.applicationinsights_connection_string
    if not connection_string:
        logger.warning(
            "ENABLE_INSTRUMENTATION=true but APPLICATIONINSIGHTS_CONNECTION_STRING not set. "
            "Observability will not be configured."
        )
        return False

    try:
        return _configure_azure_monitor(connection_string)
    except (RuntimeError, ValueError, OSError) as e:
        logger.error("Failed to configure Azure Monitor: %s", e)
        return False


def _configure_azure_monitor(connection_string: str) -> bool:
    """Configure Azure Monitor for production telemetry."""
    try:
        from azure.monitor.opentelemetry import (  # type: ignore[import-not-found]
            configure_azure_monitor,
        )
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry not installed. "
            "Install with: pip install 'assistant-chat-api[monitoring]'"
        )
        return False

    configure_azure_monitor(
        connection_string=connection_string,
        instrumentation_options={
            "azure_sdk": {"enabled": True},  # Trace Key Vault / identity calls
            "fastapi": {"enabled": True},  # Trace FastAPI requests
        },
    )

    # Suppress the noisy context detach error logs
    logging.getLogger("opentelemetry.context").setLevel(logging.CRITICAL)

    logger.info("OpenTelemetry configured with Azure Monitor")
    return True
