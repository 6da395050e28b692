"""Azure Storage account operations.

Lists storage accounts and blob containers and issues container-scoped SAS
tokens.

SAS signing:
- Preferred: a user delegation key from the blob service, signed with the
  caller's Azure AD identity (no account key leaves Azure)
- Fallback: the account's first access key from azure-mgmt-storage

Security:
- Account keys and SAS tokens are never logged
- SAS lifetime is bounded to 1..168 hours (user delegation keys last at
  most 7 days)
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.storage import StorageManagementClient
from azure.storage.blob import BlobServiceClient, ContainerSasPermissions, generate_container_sas

from opskit.credential_factory import CredentialFactory
from opskit.modules.interaction_handler import (
    AutoInteractionHandler,
    InteractionHandler,
    SelectionError,
)

logger = logging.getLogger(__name__)

MIN_SAS_HOURS = 1
MAX_SAS_HOURS = 168
SAS_PERMISSION_PATTERN = re.compile(r"^[racwdl]+$")


class StorageManagerError(Exception):
    """Raised when storage operations fail."""

    pass


class StorageAccountNotFoundError(StorageManagerError):
    """No storage account matches the requested name."""

    pass


@dataclass
class StorageAccountInfo:
    """Summary of one storage account."""

    name: str
    resource_group: str
    location: str
    kind: str | None = None
    sku: str | None = None
    blob_endpoint: str | None = None

    @property
    def account_url(self) -> str:
        return (self.blob_endpoint or f"https://{self.name}.blob.core.windows.net/").rstrip("/")


@dataclass
class SasGrant:
    """A generated (or planned) container SAS.

    ``token`` is None for a dry run.
    """

    account: str
    container: str
    permissions: str
    expiry: datetime
    method: str
    token: str | None = None
    account_url: str | None = None

    def __repr__(self) -> str:
        return (
            f"SasGrant(account={self.account!r}, container={self.container!r}, "
            f"permissions={self.permissions!r}, expiry={self.expiry.isoformat()}, "
            f"method={self.method!r}, token=***REDACTED***)"
        )

    @property
    def url(self) -> str | None:
        if self.token is None:
            return None
        base = (self.account_url or f"https://{self.account}.blob.core.windows.net").rstrip("/")
        return f"{base}/{self.container}?{self.token}"


def _resource_group_from_id(resource_id: str | None) -> str:
    parts = (resource_id or "").split("/")
    for index, part in enumerate(parts):
        if part.lower() == "resourcegroups" and index + 1 < len(parts):
            return parts[index + 1]
    return ""


def validate_sas_request(permissions: str, expiry_hours: int) -> None:
    """Check SAS permissions and lifetime.

    Raises:
        StorageManagerError: If either is out of bounds
    """
    if not SAS_PERMISSION_PATTERN.match(permissions or ""):
        raise StorageManagerError(
            f"Invalid SAS permissions '{permissions}'. Use letters from 'racwdl'."
        )
    if not MIN_SAS_HOURS <= expiry_hours <= MAX_SAS_HOURS:
        raise StorageManagerError(
            f"SAS expiry must be between {MIN_SAS_HOURS} and {MAX_SAS_HOURS} hours, "
            f"got {expiry_hours}"
        )


class StorageManager:
    """Storage account queries and SAS generation for one subscription."""

    def __init__(
        self,
        client: StorageManagementClient,
        credential: Any = None,
        interaction: InteractionHandler | None = None,
        blob_service_factory: Any = None,
    ):
        self.client = client
        self.credential = credential
        self.interaction = interaction or AutoInteractionHandler()
        self._blob_service_factory = blob_service_factory or BlobServiceClient

    @classmethod
    def for_subscription(cls, subscription_id: str, **kwargs: Any) -> "StorageManager":
        credential = CredentialFactory.create_management_credential()
        client = StorageManagementClient(credential, subscription_id)
        return cls(client, credential=credential, **kwargs)

    @staticmethod
    def _to_info(account: Any) -> StorageAccountInfo:
        endpoints = getattr(account, "primary_endpoints", None)
        sku = getattr(account, "sku", None)
        return StorageAccountInfo(
            name=account.name,
            resource_group=_resource_group_from_id(account.id),
            location=account.location,
            kind=getattr(account.kind, "value", account.kind) or None,
            sku=getattr(sku.name, "value", sku.name) if sku and sku.name else None,
            blob_endpoint=endpoints.blob if endpoints else None,
        )

    def list_accounts(self, resource_group: str | None = None) -> list[StorageAccountInfo]:
        """List storage accounts in the subscription or one resource group.

        Raises:
            StorageManagerError: If the listing fails
        """
        try:
            if resource_group:
                accounts = self.client.storage_accounts.list_by_resource_group(resource_group)
            else:
                accounts = self.client.storage_accounts.list()
            return sorted((self._to_info(a) for a in accounts), key=lambda a: a.name)
        except ResourceNotFoundError as e:
            raise StorageManagerError(f"Resource group not found: {resource_group}") from e
        except AzureError as e:
            raise StorageManagerError(f"Failed to list storage accounts: {e}") from e

    def resolve_account(
        self, name: str, resource_group: str | None = None
    ) -> StorageAccountInfo:
        """Find an account by exact name, else by name prefix.

        Several prefix matches go through the interaction handler.

        Raises:
            StorageAccountNotFoundError: If nothing matches
            StorageManagerError: If the choice is ambiguous and cannot be made
        """
        if not name:
            raise StorageManagerError("Storage account name cannot be empty")
        accounts = self.list_accounts(resource_group)
        exact = [a for a in accounts if a.name == name.lower()]
        if exact:
            return exact[0]

        matches = [a for a in accounts if a.name.startswith(name.lower())]
        if not matches:
            raise StorageAccountNotFoundError(f"No storage account matches '{name}'")
        if len(matches) == 1:
            return matches[0]

        candidates = [(a.name, f"{a.resource_group} / {a.location}") for a in matches]
        try:
            index = self.interaction.select(f"Multiple accounts match '{name}':", candidates)
        except SelectionError as e:
            raise StorageManagerError(str(e)) from e
        return matches[index]

    def list_containers(self, account: StorageAccountInfo) -> list[dict[str, Any]]:
        """List blob containers of an account through the management plane."""
        try:
            containers = self.client.blob_containers.list(account.resource_group, account.name)
            return [
                {
                    "name": c.name,
                    "public_access": str(c.public_access) if c.public_access else "None",
                    "last_modified": c.last_modified_time,
                }
                for c in containers
            ]
        except AzureError as e:
            raise StorageManagerError(
                f"Failed to list containers for {account.name}: {e}"
            ) from e

    def _account_key(self, account: StorageAccountInfo) -> str:
        try:
            result = self.client.storage_accounts.list_keys(account.resource_group, account.name)
        except AzureError as e:
            raise StorageManagerError(f"Failed to read keys for {account.name}: {e}") from e
        keys = list(result.keys or [])
        if not keys or not keys[0].value:
            raise StorageManagerError(f"No keys returned for storage account: {account.name}")
        return keys[0].value

    def generate_container_sas(
        self,
        account: StorageAccountInfo,
        container: str,
        permissions: str = "r",
        expiry_hours: int = 1,
        use_user_delegation: bool = True,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> SasGrant:
        """Generate a SAS for one container.

        Raises:
            StorageManagerError: On invalid input or Azure failures
        """
        validate_sas_request(permissions, expiry_hours)
        start = (now or datetime.now(UTC)) - timedelta(minutes=5)
        expiry = start + timedelta(minutes=5, hours=expiry_hours)
        method = "user_delegation" if use_user_delegation else "account_key"
        grant = SasGrant(
            account=account.name,
            container=container,
            permissions=permissions,
            expiry=expiry,
            method=method,
            account_url=account.account_url,
        )
        if dry_run:
            return grant

        sas_permission = ContainerSasPermissions.from_string(permissions)
        try:
            if use_user_delegation:
                service = self._blob_service_factory(account.account_url, credential=self.credential)
                delegation_key = service.get_user_delegation_key(start, expiry)
                grant.token = generate_container_sas(
                    account.name,
                    container,
                    user_delegation_key=delegation_key,
                    permission=sas_permission,
                    expiry=expiry,
                    start=start,
                )
            else:
                grant.token = generate_container_sas(
                    account.name,
                    container,
                    account_key=self._account_key(account),
                    permission=sas_permission,
                    expiry=expiry,
                    start=start,
                )
        except AzureError as e:
            raise StorageManagerError(
                f"Failed to generate SAS for {account.name}/{container}: {e}"
            ) from e

        logger.info(
            f"Generated {method} SAS for {account.name}/{container} "
            f"(permissions={permissions}, expires {expiry.isoformat()})"
        )
        return grant


__all__ = [
    "SasGrant",
    "StorageAccountInfo",
    "StorageAccountNotFoundError",
    "StorageManager",
    "StorageManagerError",
    "validate_sas_request",
]
