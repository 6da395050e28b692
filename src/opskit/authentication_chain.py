"""Authentication chain with priority fallback for Kusto endpoints.

The chain tries token providers in priority order until one yields a token
whose claims match the expected tenant and account.

Priority Order:
1. Service Principal (client id/secret/tenant configured)
2. Managed Identity (client id configured)
3. Ambient Managed Identity (platform exposes an identity endpoint)
4. Azure CLI (SDK credential, then ``az account get-access-token``)
5. Legacy interactive MSAL flow (silent -> browser -> device code)

Design Philosophy:
- Each provider is a small object behind one interface
- Provider failures are logged and the chain moves on
- A token that fails claim validation is discarded, never used
- No retry logic inside the chain
"""

import json
import logging
import subprocess
from datetime import datetime
from typing import Protocol, runtime_checkable

from opskit.auth_models import AuthMethod, ChainResult, KustoAuthOptions, TokenInfo
from opskit.credential_factory import CredentialFactory
from opskit.legacy_auth import LegacyAuthenticator, LegacyAuthError, TokenCacheStore
from opskit.log_sanitizer import LogSanitizer
from opskit.token_claims import decode_jwt_claims, validate_token_claims

logger = logging.getLogger(__name__)


class AuthenticationChainError(Exception):
    """Raised when every authentication method has failed."""

    pass


class TokenProviderError(Exception):
    """Raised by a provider that could not acquire a token."""

    pass


def _scope(resource: str) -> str:
    return f"{resource.rstrip('/')}/.default"


@runtime_checkable
class TokenProvider(Protocol):
    """One credential source in the chain."""

    method: AuthMethod

    def is_available(self) -> bool:
        """Return True when this provider has the inputs it needs."""
        ...

    def acquire_token(self, resource: str) -> TokenInfo:
        """Acquire a token for ``resource``.

        Raises:
            TokenProviderError: If no token could be acquired
        """
        ...


class SdkCredentialProvider:
    """Provider backed by an azure-identity credential."""

    def __init__(self, method: AuthMethod, credential_builder, available: bool = True):
        self.method = method
        self._credential_builder = credential_builder
        self._available = available

    def is_available(self) -> bool:
        return self._available

    def acquire_token(self, resource: str) -> TokenInfo:
        try:
            credential = self._credential_builder()
            access_token = credential.get_token(_scope(resource))
        except Exception as e:
            raise TokenProviderError(
                LogSanitizer.create_safe_error_message(e, self.method.value)
            ) from e
        if not access_token or not access_token.token:
            raise TokenProviderError(f"{self.method.value}: empty token")
        return TokenInfo(
            token=access_token.token,
            expires_on=float(access_token.expires_on),
            method=self.method,
        )


class AzureCliProcessProvider:
    """Provider that shells out to ``az account get-access-token``."""

    method = AuthMethod.AZURE_CLI_PROCESS

    def __init__(self, tenant_id: str | None = None, timeout: int = 30):
        self.tenant_id = tenant_id
        self.timeout = timeout

    def is_available(self) -> bool:
        return True

    @staticmethod
    def _parse_expiry(data: dict) -> float:
        if data.get("expires_on"):
            return float(data["expires_on"])
        # Older CLI versions only report local time
        return datetime.fromisoformat(data["expiresOn"]).timestamp()

    def acquire_token(self, resource: str) -> TokenInfo:
        cmd = [
            "az",
            "account",
            "get-access-token",
            "--resource",
            resource.rstrip("/"),
            "--output",
            "json",
        ]
        if self.tenant_id:
            cmd.extend(["--tenant", self.tenant_id])

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout, check=True
            )
            data = json.loads(result.stdout)
            return TokenInfo(
                token=data["accessToken"],
                expires_on=self._parse_expiry(data),
                method=self.method,
            )
        except FileNotFoundError as e:
            raise TokenProviderError("azure_cli_process: az CLI not installed") from e
        except subprocess.CalledProcessError as e:
            raise TokenProviderError(
                f"azure_cli_process: {LogSanitizer.sanitize(e.stderr or str(e))}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TokenProviderError("azure_cli_process: timed out") from e
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise TokenProviderError(f"azure_cli_process: unexpected output: {e}") from e


class AzureCliProvider:
    """Azure CLI token cache: SDK credential first, then the az process."""

    method = AuthMethod.AZURE_CLI

    def __init__(self, tenant_id: str | None = None):
        self._sdk = SdkCredentialProvider(
            AuthMethod.AZURE_CLI,
            lambda: CredentialFactory.create_cli_credential(tenant_id),
        )
        self._process = AzureCliProcessProvider(tenant_id)

    def is_available(self) -> bool:
        return True

    def acquire_token(self, resource: str) -> TokenInfo:
        try:
            return self._sdk.acquire_token(resource)
        except TokenProviderError as e:
            logger.debug(f"Azure CLI SDK credential failed, invoking az directly: {e}")
        return self._process.acquire_token(resource)


def build_sdk_providers(options: KustoAuthOptions) -> list[TokenProvider]:
    """Build the ordered SDK provider list for ``options``."""
    return [
        SdkCredentialProvider(
            AuthMethod.SERVICE_PRINCIPAL,
            lambda: CredentialFactory.create_sp_secret_credential(
                options.tenant_id, options.client_id, options.client_secret
            ),
            available=options.has_service_principal,
        ),
        SdkCredentialProvider(
            AuthMethod.MANAGED_IDENTITY,
            lambda: CredentialFactory.create_managed_identity_credential(
                options.managed_identity_client_id
            ),
            available=options.managed_identity_client_id is not None,
        ),
        SdkCredentialProvider(
            AuthMethod.AMBIENT_MANAGED_IDENTITY,
            CredentialFactory.create_managed_identity_credential,
            available=CredentialFactory.ambient_identity_available(),
        ),
        AzureCliProvider(options.tenant_id),
    ]


class AuthenticationChain:
    """Execute authentication with priority-based fallback.

    Security:
    - All errors sanitized to prevent secret leakage
    - Tokens that fail claim validation are dropped
    """

    def __init__(
        self,
        options: KustoAuthOptions,
        resource: str,
        providers: list[TokenProvider] | None = None,
        legacy: LegacyAuthenticator | None = None,
    ):
        self.options = options
        self.resource = resource
        self.providers = providers if providers is not None else build_sdk_providers(options)
        self._legacy = legacy

    @property
    def legacy(self) -> LegacyAuthenticator:
        if self._legacy is None:
            self._legacy = LegacyAuthenticator(
                tenant_id=self.options.tenant_id,
                login_hint=self.options.expected_upn,
                cache_store=TokenCacheStore(),
            )
        return self._legacy

    def _accept(self, token: TokenInfo) -> bool:
        return validate_token_claims(
            token.token,
            expected_tenant=self.options.tenant_id,
            expected_upn=self.options.expected_upn,
        )

    @staticmethod
    def _with_claims(token: TokenInfo) -> TokenInfo:
        try:
            claims = decode_jwt_claims(token.token)
        except ValueError:
            claims = {}
        return TokenInfo(
            token=token.token, expires_on=token.expires_on, method=token.method, claims=claims
        )

    def authenticate(self, force_legacy: bool = False) -> ChainResult:
        """Run the chain.

        Args:
            force_legacy: Skip SDK providers and go straight to legacy auth

        Returns:
            ChainResult: success with the first validated token, or failure
            with every attempt's error
        """
        attempts: list[str] = []

        if self.options.use_sdk and not force_legacy:
            for provider in self.providers:
                if not provider.is_available():
                    continue
                try:
                    token = provider.acquire_token(self.resource)
                except TokenProviderError as e:
                    logger.debug(f"{provider.method.value} failed: {e}")
                    attempts.append(str(e))
                    continue

                if not self._accept(token):
                    message = f"{provider.method.value}: token claims do not match expected tenant/account"
                    logger.warning(message)
                    attempts.append(message)
                    continue

                logger.debug(f"Authenticated via {token.method.value}")
                return ChainResult(
                    success=True,
                    method=token.method,
                    token=self._with_claims(token),
                    attempts=tuple(attempts),
                )

        if not self.options.allow_interactive:
            attempts.append("legacy: interactive authentication disabled")
            return ChainResult(success=False, error="; ".join(attempts), attempts=tuple(attempts))

        try:
            token = self.legacy.acquire_token(self.resource)
        except LegacyAuthError as e:
            attempts.append(LogSanitizer.sanitize_exception(e))
            logger.warning(f"Legacy authentication failed: {attempts[-1]}")
            return ChainResult(success=False, error="; ".join(attempts), attempts=tuple(attempts))

        if not self._accept(token):
            attempts.append(f"{token.method.value}: token claims do not match expected tenant/account")
            return ChainResult(success=False, error="; ".join(attempts), attempts=tuple(attempts))

        return ChainResult(
            success=True,
            method=token.method,
            token=self._with_claims(token),
            attempts=tuple(attempts),
        )


__all__ = [
    "AuthenticationChain",
    "AuthenticationChainError",
    "AzureCliProcessProvider",
    "AzureCliProvider",
    "SdkCredentialProvider",
    "TokenProvider",
    "TokenProviderError",
    "build_sdk_providers",
]
