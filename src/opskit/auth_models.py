"""Authentication data models for the Kusto client.

This module defines the authentication-related data structures:
- AuthMethod enum
- KustoAuthOptions (what the caller asked for)
- TokenInfo (an acquired bearer token)
- ChainResult (outcome of one chain attempt)

Security features:
- Frozen dataclasses for immutability
- UUID validation in __post_init__
- Tokens never appear in repr()
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import UUID

# Tokens with less remaining lifetime than this are renewed before use
REFRESH_THRESHOLD_SECONDS = 15 * 60


def validate_uuid(value: str, field_name: str) -> None:
    """Validate UUID format. Raises ValueError if invalid."""
    if not value:
        raise ValueError(f"{field_name} must be valid UUID format, got empty string")

    try:
        UUID(value)
    except (ValueError, AttributeError) as e:
        raise ValueError(f"{field_name} must be valid UUID format, got: {value}") from e


class AuthMethod(StrEnum):
    """Authentication methods, in chain order."""

    SERVICE_PRINCIPAL = "service_principal"
    MANAGED_IDENTITY = "managed_identity"
    AMBIENT_MANAGED_IDENTITY = "ambient_managed_identity"
    AZURE_CLI = "azure_cli"
    AZURE_CLI_PROCESS = "azure_cli_process"
    LEGACY_SILENT = "legacy_silent"
    LEGACY_INTERACTIVE = "legacy_interactive"
    LEGACY_DEVICE_CODE = "legacy_device_code"

    @property
    def is_legacy(self) -> bool:
        return self in (
            AuthMethod.LEGACY_SILENT,
            AuthMethod.LEGACY_INTERACTIVE,
            AuthMethod.LEGACY_DEVICE_CODE,
        )


@dataclass(frozen=True)
class KustoAuthOptions:
    """Authentication options for a Kusto endpoint.

    expected_tenant/expected_upn are checked against every acquired token.
    use_sdk=False skips straight to the legacy interactive flow.
    """

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    managed_identity_client_id: str | None = None
    expected_upn: str | None = None
    use_sdk: bool = True
    allow_interactive: bool = True

    def __post_init__(self):
        if self.tenant_id is not None:
            validate_uuid(self.tenant_id, "tenant_id")
        if self.client_id is not None:
            validate_uuid(self.client_id, "client_id")
        if self.managed_identity_client_id is not None:
            validate_uuid(self.managed_identity_client_id, "managed_identity_client_id")
        if self.client_secret and not (self.client_id and self.tenant_id):
            raise ValueError("client_secret requires client_id and tenant_id")

    @property
    def has_service_principal(self) -> bool:
        return bool(self.client_id and self.tenant_id)


@dataclass(frozen=True)
class TokenInfo:
    """An acquired bearer token."""

    token: str = field(repr=False)
    expires_on: float
    method: AuthMethod
    claims: dict[str, Any] = field(default_factory=dict, repr=False)

    def seconds_remaining(self, now: float | None = None) -> float:
        current = time.time() if now is None else now
        return self.expires_on - current

    def needs_refresh(self, now: float | None = None) -> bool:
        """True when less than REFRESH_THRESHOLD_SECONDS of lifetime remains."""
        return self.seconds_remaining(now) <= REFRESH_THRESHOLD_SECONDS


@dataclass(frozen=True)
class ChainResult:
    """Result of an authentication chain attempt."""

    success: bool
    method: AuthMethod | None = None
    token: TokenInfo | None = None
    error: str | None = None
    attempts: tuple[str, ...] = ()
