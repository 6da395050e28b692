"""Unit tests for authentication_chain module.

Tests cover:
- Priority order and fallback
- Claim validation discarding wrong-tenant tokens
- Legacy fallback invoked exactly once
- Non-interactive mode
- Azure CLI process provider
"""

import json
import subprocess
import time
from unittest.mock import Mock, patch

import pytest

from opskit.auth_models import AuthMethod, KustoAuthOptions, TokenInfo
from opskit.authentication_chain import (
    AuthenticationChain,
    AzureCliProcessProvider,
    AzureCliProvider,
    SdkCredentialProvider,
    TokenProviderError,
    build_sdk_providers,
)
from opskit.legacy_auth import LegacyAuthenticator, LegacyAuthError

TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"
CLIENT_ID = "33333333-3333-3333-3333-333333333333"
RESOURCE = "https://help.kusto.windows.net"


class FakeProvider:
    """Provider returning a fixed token or raising."""

    def __init__(self, method, token=None, error=None, available=True):
        self.method = method
        self.token = token
        self.error = error
        self.available = available
        self.calls = 0

    def is_available(self):
        return self.available

    def acquire_token(self, resource):
        self.calls += 1
        if self.error:
            raise TokenProviderError(f"{self.method.value}: {self.error}")
        return TokenInfo(token=self.token, expires_on=time.time() + 3600, method=self.method)


def _legacy(token=None, error=None):
    legacy = Mock()
    if error:
        legacy.acquire_token.side_effect = LegacyAuthError(error)
    else:
        legacy.acquire_token.return_value = TokenInfo(
            token=token, expires_on=time.time() + 3600, method=AuthMethod.LEGACY_INTERACTIVE
        )
    return legacy


class TestChainOrder:
    """Providers are tried in order; the first valid token wins."""

    def test_first_available_provider_wins(self, jwt_factory):
        first = FakeProvider(AuthMethod.SERVICE_PRINCIPAL, token=jwt_factory(tid=TENANT_A))
        second = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A))
        legacy = _legacy()
        chain = AuthenticationChain(
            KustoAuthOptions(tenant_id=TENANT_A), RESOURCE, [first, second], legacy
        )

        result = chain.authenticate()

        assert result.success
        assert result.method == AuthMethod.SERVICE_PRINCIPAL
        assert second.calls == 0
        legacy.acquire_token.assert_not_called()

    def test_unavailable_providers_skipped(self, jwt_factory):
        skipped = FakeProvider(AuthMethod.MANAGED_IDENTITY, token="x", available=False)
        cli = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, [skipped, cli], _legacy())

        result = chain.authenticate()

        assert result.method == AuthMethod.AZURE_CLI
        assert skipped.calls == 0

    def test_failures_recorded_and_chain_continues(self, jwt_factory):
        broken = FakeProvider(AuthMethod.SERVICE_PRINCIPAL, error="bad secret")
        cli = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, [broken, cli], _legacy())

        result = chain.authenticate()

        assert result.success
        assert result.attempts == ("service_principal: bad secret",)

    def test_successful_token_carries_claims(self, jwt_factory):
        cli = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A, upn="ops@contoso.com"))
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, [cli], _legacy())

        result = chain.authenticate()

        assert result.token.claims["upn"] == "ops@contoso.com"


class TestClaimValidation:
    """Tokens for another tenant or account are never used."""

    def test_wrong_tenant_token_discarded(self, jwt_factory):
        wrong = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_B))
        legacy = _legacy(token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(tenant_id=TENANT_A), RESOURCE, [wrong], legacy)

        result = chain.authenticate()

        assert result.success
        assert result.method == AuthMethod.LEGACY_INTERACTIVE
        assert result.token.claims["tid"] == TENANT_A
        assert "token claims do not match" in result.attempts[0]

    def test_wrong_account_token_discarded(self, jwt_factory):
        wrong = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(upn="other@contoso.com"))
        chain = AuthenticationChain(
            KustoAuthOptions(expected_upn="ops@contoso.com", allow_interactive=False),
            RESOURCE,
            [wrong],
            _legacy(),
        )

        result = chain.authenticate()

        assert not result.success
        assert result.token is None

    def test_legacy_token_for_wrong_tenant_fails(self, jwt_factory):
        legacy = _legacy(token=jwt_factory(tid=TENANT_B))
        chain = AuthenticationChain(KustoAuthOptions(tenant_id=TENANT_A), RESOURCE, [], legacy)

        result = chain.authenticate()

        assert not result.success
        assert result.token is None
        assert "legacy_interactive" in result.error


class TestLegacyFallback:
    """Legacy interactive auth runs once after the SDK providers."""

    def test_legacy_called_once_after_exhaustion(self, jwt_factory):
        providers = [
            FakeProvider(AuthMethod.SERVICE_PRINCIPAL, error="nope"),
            FakeProvider(AuthMethod.AZURE_CLI, error="not logged in"),
        ]
        legacy = _legacy(token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, providers, legacy)

        result = chain.authenticate()

        assert result.success
        legacy.acquire_token.assert_called_once_with(RESOURCE)
        assert len(result.attempts) == 2

    def test_force_legacy_skips_sdk(self, jwt_factory):
        cli = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A))
        legacy = _legacy(token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, [cli], legacy)

        result = chain.authenticate(force_legacy=True)

        assert result.method == AuthMethod.LEGACY_INTERACTIVE
        assert cli.calls == 0

    def test_use_sdk_false_skips_sdk(self, jwt_factory):
        cli = FakeProvider(AuthMethod.AZURE_CLI, token=jwt_factory(tid=TENANT_A))
        legacy = _legacy(token=jwt_factory(tid=TENANT_A))
        chain = AuthenticationChain(KustoAuthOptions(use_sdk=False), RESOURCE, [cli], legacy)

        chain.authenticate()

        assert cli.calls == 0
        legacy.acquire_token.assert_called_once()

    def test_non_interactive_fails_without_legacy(self):
        providers = [FakeProvider(AuthMethod.AZURE_CLI, error="not logged in")]
        legacy = _legacy()
        chain = AuthenticationChain(
            KustoAuthOptions(allow_interactive=False), RESOURCE, providers, legacy
        )

        result = chain.authenticate()

        assert not result.success
        assert "interactive authentication disabled" in result.error
        legacy.acquire_token.assert_not_called()

    def test_legacy_failure_reported(self):
        chain = AuthenticationChain(
            KustoAuthOptions(), RESOURCE, [], _legacy(error="device code expired")
        )

        result = chain.authenticate()

        assert not result.success
        assert "device code expired" in result.error

    def test_legacy_network_errors_reported_not_raised(self):
        app = Mock()
        app.get_accounts.return_value = [{"username": "ops@contoso.com"}]
        app.acquire_token_silent.side_effect = ConnectionError("network down")
        app.acquire_token_interactive.side_effect = ConnectionError("network down")
        app.initiate_device_flow.side_effect = ConnectionError("network down")
        legacy = LegacyAuthenticator(app=app)
        chain = AuthenticationChain(KustoAuthOptions(), RESOURCE, [], legacy)

        result = chain.authenticate()

        assert not result.success
        assert "legacy_silent: network down" in result.error
        app.acquire_token_interactive.assert_called_once()
        app.initiate_device_flow.assert_called_once()


class TestSdkCredentialProvider:
    """Tests for the azure-identity backed provider."""

    def test_returns_token(self):
        credential = Mock()
        credential.get_token.return_value = Mock(token="abc", expires_on=1700000000)
        provider = SdkCredentialProvider(AuthMethod.MANAGED_IDENTITY, lambda: credential)

        token = provider.acquire_token(RESOURCE + "/")

        credential.get_token.assert_called_once_with(f"{RESOURCE}/.default")
        assert token.token == "abc"
        assert token.expires_on == 1700000000.0

    def test_wraps_credential_errors(self):
        credential = Mock()
        credential.get_token.side_effect = RuntimeError("no identity endpoint")
        provider = SdkCredentialProvider(AuthMethod.MANAGED_IDENTITY, lambda: credential)

        with pytest.raises(TokenProviderError):
            provider.acquire_token(RESOURCE)

    def test_build_sdk_providers_availability(self):
        options = KustoAuthOptions(tenant_id=TENANT_A, client_id=CLIENT_ID, client_secret="s")
        with patch(
            "opskit.authentication_chain.CredentialFactory.ambient_identity_available",
            return_value=False,
        ):
            providers = build_sdk_providers(options)

        methods = [p.method for p in providers if p.is_available()]
        assert methods == [AuthMethod.SERVICE_PRINCIPAL, AuthMethod.AZURE_CLI]


class TestAzureCliProcessProvider:
    """Tests for the az subprocess fallback."""

    @patch("opskit.authentication_chain.subprocess.run")
    def test_parses_token(self, mock_run):
        mock_run.return_value = Mock(
            stdout=json.dumps({"accessToken": "tok", "expires_on": 1700000000})
        )

        token = AzureCliProcessProvider(tenant_id=TENANT_A).acquire_token(RESOURCE)

        assert token.token == "tok"
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["az", "account", "get-access-token"]
        assert cmd[-2:] == ["--tenant", TENANT_A]

    @patch("opskit.authentication_chain.subprocess.run", side_effect=FileNotFoundError())
    def test_missing_cli(self, mock_run):
        with pytest.raises(TokenProviderError, match="not installed"):
            AzureCliProcessProvider().acquire_token(RESOURCE)

    @patch("opskit.authentication_chain.subprocess.run")
    def test_not_logged_in(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, "az", stderr="Please run 'az login'")
        with pytest.raises(TokenProviderError, match="az login"):
            AzureCliProcessProvider().acquire_token(RESOURCE)

    def test_cli_provider_falls_back_to_process(self):
        provider = AzureCliProvider()
        provider._sdk = Mock()
        provider._sdk.acquire_token.side_effect = TokenProviderError("azure_cli: no cache")
        provider._process = Mock()
        provider._process.acquire_token.return_value = "token"

        assert provider.acquire_token(RESOURCE) == "token"
        provider._process.acquire_token.assert_called_once_with(RESOURCE)
