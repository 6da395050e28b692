"""Credential factory for Azure authentication.

This module creates Azure Identity SDK credential objects. It is the single
place where opskit maps its authentication options onto azure-identity
types.

Supported credential types:
- ClientSecretCredential: Service principal with client secret
- ManagedIdentityCredential: Managed identity (system or user-assigned)
- AzureCliCredential: Delegate to the Azure CLI token cache
- DefaultAzureCredential: Management-plane clients (ARM)

Security:
- No token storage - delegates to Azure Identity SDK
- Client secrets from options or environment variables only
- Log sanitization for all error messages
"""

import os

from azure.identity import (
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from opskit.log_sanitizer import LogSanitizer

# Environment markers set by Azure-hosted runtimes that expose a managed identity
AMBIENT_IDENTITY_MARKERS = (
    "IDENTITY_ENDPOINT",
    "MSI_ENDPOINT",
    "AZUREPS_HOST_ENVIRONMENT",
)


class CredentialFactoryError(Exception):
    """Raised when credential creation fails."""

    pass


class CredentialFactory:
    """Factory for creating Azure Identity credentials."""

    @staticmethod
    def create_sp_secret_credential(
        tenant_id: str, client_id: str, client_secret: str | None = None
    ) -> ClientSecretCredential:
        """Create service principal credential with client secret.

        The secret comes from the argument, AZURE_CLIENT_SECRET or
        OPSKIT_CLIENT_SECRET, in that order.

        Raises:
            CredentialFactoryError: If no secret is available or creation fails
        """
        secret = (
            client_secret
            or os.getenv("AZURE_CLIENT_SECRET")
            or os.getenv("OPSKIT_CLIENT_SECRET")
        )
        if not secret:
            raise CredentialFactoryError(
                "Client secret not found. "
                "Set AZURE_CLIENT_SECRET or OPSKIT_CLIENT_SECRET environment variable."
            )

        try:
            return ClientSecretCredential(
                tenant_id=tenant_id, client_id=client_id, client_secret=secret
            )
        except Exception as e:
            raise CredentialFactoryError(
                f"Failed to create service principal credential: "
                f"{LogSanitizer.sanitize_exception(e)}"
            ) from e

    @staticmethod
    def create_managed_identity_credential(
        client_id: str | None = None,
    ) -> ManagedIdentityCredential:
        """Create managed identity credential.

        Without ``client_id`` the system-assigned identity is used.
        """
        try:
            if client_id:
                return ManagedIdentityCredential(client_id=client_id)
            return ManagedIdentityCredential()
        except Exception as e:
            raise CredentialFactoryError(
                f"Failed to create managed identity credential: "
                f"{LogSanitizer.sanitize_exception(e)}"
            ) from e

    @staticmethod
    def create_cli_credential(tenant_id: str | None = None) -> AzureCliCredential:
        """Create Azure CLI credential."""
        try:
            if tenant_id:
                return AzureCliCredential(tenant_id=tenant_id)
            return AzureCliCredential()
        except Exception as e:
            raise CredentialFactoryError(
                f"Failed to create Azure CLI credential. "
                f"Is Azure CLI installed and authenticated? "
                f"Error: {LogSanitizer.sanitize_exception(e)}"
            ) from e

    @staticmethod
    def create_management_credential() -> DefaultAzureCredential:
        """Create the credential used for ARM management clients."""
        return DefaultAzureCredential(exclude_interactive_browser_credential=True)

    @staticmethod
    def ambient_identity_available(environ: dict[str, str] | None = None) -> bool:
        """Check whether the platform advertises a managed identity endpoint."""
        env = os.environ if environ is None else environ
        return any(env.get(marker) for marker in AMBIENT_IDENTITY_MARKERS)


__all__ = ["AMBIENT_IDENTITY_MARKERS", "CredentialFactory", "CredentialFactoryError"]
