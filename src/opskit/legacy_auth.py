"""Legacy interactive authentication through MSAL.

Used when no SDK credential source yields a valid token, and whenever a
Kusto endpoint answers 401. Steps run in order, each only if the previous
one failed:

1. Silent: reuse a cached account from the persisted MSAL token cache
2. Interactive: system browser sign-in
3. Device code: print a code for sign-in on another device

The MSAL token cache is persisted at ~/.opskit/msal_token_cache.json with
0600 permissions.
"""

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import msal

from opskit.auth_models import AuthMethod, TokenInfo
from opskit.config_manager import ConfigError, ConfigManager

logger = logging.getLogger(__name__)

# Public client id of the Azure CLI, pre-consented for Kusto and ARM
AZURE_CLI_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"


class LegacyAuthError(Exception):
    """Raised when a legacy authentication step fails."""

    pass


class TokenCacheStore:
    """Persist an MSAL SerializableTokenCache on disk."""

    def __init__(self, path: Path | None = None):
        self.path = path or ConfigManager.DEFAULT_CONFIG_DIR / "msal_token_cache.json"
        self.cache = msal.SerializableTokenCache()
        if self.path.exists():
            self.cache.deserialize(self.path.read_text())

    def save(self) -> None:
        """Write the cache atomically with 0600 permissions if it changed.

        Raises:
            LegacyAuthError: If the cache cannot be written
        """
        if not self.cache.has_state_changed:
            return
        temp_path = self.path.with_suffix(".tmp")
        try:
            if self.path.parent == ConfigManager.DEFAULT_CONFIG_DIR:
                ConfigManager.ensure_config_dir()
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)

            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(self.cache.serialize())
            os.chmod(temp_path, 0o600)
            temp_path.replace(self.path)
        except (OSError, ConfigError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise LegacyAuthError(f"Failed to save token cache: {e}") from e
        self.cache.has_state_changed = False


def _echo_device_message(message: str) -> None:
    click.echo(message, err=True)


class LegacyAuthenticator:
    """Acquire tokens with MSAL public client flows."""

    def __init__(
        self,
        tenant_id: str | None = None,
        login_hint: str | None = None,
        client_id: str = AZURE_CLI_CLIENT_ID,
        cache_store: TokenCacheStore | None = None,
        app: Any | None = None,
        device_message_callback: Callable[[str], None] = _echo_device_message,
    ):
        self.tenant_id = tenant_id
        self.login_hint = login_hint
        self.cache_store = cache_store
        self.device_message_callback = device_message_callback
        if app is None:
            authority = f"{DEFAULT_AUTHORITY_HOST}/{tenant_id or 'organizations'}"
            app = msal.PublicClientApplication(
                client_id,
                authority=authority,
                token_cache=cache_store.cache if cache_store else None,
            )
        self.app = app

    @staticmethod
    def _to_token(result: dict[str, Any] | None, method: AuthMethod) -> TokenInfo:
        if not result:
            raise LegacyAuthError(f"{method.value}: no token returned")
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "")
            raise LegacyAuthError(f"{method.value}: {error} {description}".strip())
        expires_in = float(result.get("expires_in", 3600))
        return TokenInfo(
            token=result["access_token"],
            expires_on=time.time() + expires_in,
            method=method,
        )

    def acquire_silent(self, scopes: list[str]) -> TokenInfo:
        try:
            accounts = self.app.get_accounts(username=self.login_hint) if self.login_hint else []
            if not accounts:
                accounts = self.app.get_accounts()
            if not accounts:
                raise LegacyAuthError("legacy_silent: no cached account")
            result = self.app.acquire_token_silent(scopes, account=accounts[0])
        except LegacyAuthError:
            raise
        except Exception as e:
            raise LegacyAuthError(f"legacy_silent: {e}") from e
        return self._to_token(result, AuthMethod.LEGACY_SILENT)

    def acquire_interactive(self, scopes: list[str]) -> TokenInfo:
        try:
            result = self.app.acquire_token_interactive(scopes, login_hint=self.login_hint)
        except Exception as e:
            raise LegacyAuthError(f"legacy_interactive: {e}") from e
        return self._to_token(result, AuthMethod.LEGACY_INTERACTIVE)

    def acquire_device_code(self, scopes: list[str]) -> TokenInfo:
        try:
            flow = self.app.initiate_device_flow(scopes=scopes)
        except Exception as e:
            raise LegacyAuthError(f"legacy_device_code: could not start device flow: {e}") from e
        if "user_code" not in flow:
            raise LegacyAuthError(
                f"legacy_device_code: could not start device flow: "
                f"{flow.get('error_description', flow.get('error', 'unknown error'))}"
            )
        self.device_message_callback(flow["message"])
        try:
            result = self.app.acquire_token_by_device_flow(flow)
        except Exception as e:
            raise LegacyAuthError(f"legacy_device_code: {e}") from e
        return self._to_token(result, AuthMethod.LEGACY_DEVICE_CODE)

    def acquire_token(self, resource: str) -> TokenInfo:
        """Run silent, interactive and device-code steps until one succeeds.

        Raises:
            LegacyAuthError: If every step fails
        """
        scopes = [f"{resource.rstrip('/')}/.default"]
        steps = (self.acquire_silent, self.acquire_interactive, self.acquire_device_code)
        errors: list[str] = []

        for step in steps:
            try:
                token = step(scopes)
            except LegacyAuthError as e:
                logger.debug(str(e))
                errors.append(str(e))
                continue
            if self.cache_store:
                try:
                    self.cache_store.save()
                except LegacyAuthError as e:
                    logger.warning(str(e))
            logger.debug(f"Legacy authentication succeeded via {token.method.value}")
            return token

        raise LegacyAuthError("Legacy authentication failed: " + "; ".join(errors))


__all__ = [
    "AZURE_CLI_CLIENT_ID",
    "LegacyAuthError",
    "LegacyAuthenticator",
    "TokenCacheStore",
]
