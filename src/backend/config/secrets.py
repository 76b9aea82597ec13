"""Secret loading from Azure Key Vault.

Secrets are optional: when ``AZURE_KEY_VAULT_ENDPOINT`` is unset the
settings are returned untouched and values come from the environment.
Values already present in the environment always win over the vault.
"""

from __future__ import annotations

import logging

from azure.core.exceptions import ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential
from azure.keyvault.secrets.aio import SecretClient
from config.settings import Settings

logger = logging.getLogger(__name__)

# Key Vault secret name -> Settings field
SECRET_FIELDS: dict[str, str] = {
    "OpenAI-ApiKey": "openai_api_key",
    "OpenAI-AssistantId": "openai_assistant_id",
}


def create_credential(client_id: str | None = None) -> DefaultAzureCredential:
    """Build an async ``DefaultAzureCredential``.

    Args:
        client_id: User-assigned managed identity client ID, or ``None`` to
            use the system-assigned identity / developer login.
    """
    if client_id:
        return DefaultAzureCredential(managed_identity_client_id=client_id)
    return DefaultAzureCredential()


async def load_key_vault_secrets(settings: Settings) -> Settings:
    """Return a copy of *settings* with missing secrets filled from Key Vault.

    Args:
        settings: Settings loaded from the environment.

    Returns:
        The same object when no vault is configured or nothing is missing,
        otherwise an updated copy.
    """
    vault_url = settings.azure_key_vault_endpoint
    if not vault_url:
        return settings

    missing = {
        secret_name: field_name
        for secret_name, field_name in SECRET_FIELDS.items()
        if not getattr(settings, field_name)
    }
    if not missing:
        logger.info("All secrets supplied by environment; skipping Key Vault")
        return settings

    updates: dict[str, str] = {}
    async with create_credential(settings.azure_client_id) as credential:
        async with SecretClient(vault_url=vault_url, credential=credential) as client:
            for secret_name, field_name in missing.items():
                try:
                    secret = await client.get_secret(secret_name)
                except ResourceNotFoundError:
                    logger.warning("Secret %s not found in %s", secret_name, vault_url)
                    continue
                if secret.value:
                    updates[field_name] = secret.value

    logger.info("Loaded %d secret(s) from Key Vault %s", len(updates), vault_url)
    return settings.model_copy(update=updates)
