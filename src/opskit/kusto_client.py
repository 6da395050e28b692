"""Kusto REST client.

Runs queries (``/v2/rest/query``) and management commands
(``/v1/rest/mgmt``) against an Azure Data Explorer cluster with a bearer
token from the authentication chain.

Token lifecycle:
- The session token is reused while more than 15 minutes of lifetime
  remain; otherwise the chain runs again before the next request.
- An HTTP 401 triggers exactly one re-authentication with the legacy
  interactive flow forced, then one retry. A second 401 is fatal.
"""

import logging
import uuid
from typing import Any

import requests

from opskit.auth_models import KustoAuthOptions, TokenInfo
from opskit.authentication_chain import AuthenticationChain, AuthenticationChainError
from opskit.log_sanitizer import LogSanitizer
from opskit.result_table import ResultTable, ResultTableError, shape_table

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
TOP_LEVEL_DOMAINS = ("net", "com", "cn", "us", "de")


class KustoError(Exception):
    """Raised when a Kusto request fails.

    ``payload`` carries the service's error body unchanged.
    """

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def normalize_cluster_url(cluster: str) -> str:
    """Accept 'mycluster.westus', a host name or a full URL."""
    cluster = cluster.strip().rstrip("/")
    if cluster.startswith(("https://", "http://")):
        return cluster
    if cluster.rsplit(".", 1)[-1] not in TOP_LEVEL_DOMAINS:
        cluster = f"{cluster}.kusto.windows.net"
    return f"https://{cluster}"


class KustoClient:
    """Query client for one cluster/database.

    The client holds the session token itself; nothing is kept at module
    level.
    """

    def __init__(
        self,
        cluster: str,
        database: str | None = None,
        auth: KustoAuthOptions | None = None,
        chain: AuthenticationChain | None = None,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.cluster = normalize_cluster_url(cluster)
        self.database = database
        self.auth = auth or KustoAuthOptions()
        self.chain = chain or AuthenticationChain(self.auth, self.cluster)
        self.session = session or requests.Session()
        self.timeout = timeout
        self._token: TokenInfo | None = None

    @property
    def token(self) -> TokenInfo | None:
        return self._token

    def _ensure_token(self, force_legacy: bool = False) -> TokenInfo:
        """Return a usable token, running the chain when needed.

        Raises:
            AuthenticationChainError: If every method fails
        """
        if not force_legacy and self._token is not None and not self._token.needs_refresh():
            return self._token

        if self._token is not None and not force_legacy:
            logger.debug("Cached token expires within refresh threshold; re-authenticating")

        result = self.chain.authenticate(force_legacy=force_legacy)
        if not result.success or result.token is None:
            raise AuthenticationChainError(f"Authentication failed: {result.error}")

        self._token = result.token
        logger.debug(f"Using token from {result.method.value if result.method else 'unknown'}")
        return self._token

    def _headers(self, token: TokenInfo) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token.token}",
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
            "x-ms-app": "opskit",
            "x-ms-client-request-id": f"opskit;{uuid.uuid4()}",
        }

    @staticmethod
    def _error_payload(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self.cluster}{path}"
        token = self._ensure_token()

        try:
            response = self.session.post(
                url, json=body, headers=self._headers(token), timeout=self.timeout
            )
            if response.status_code == 401:
                logger.warning("Received 401 from Kusto; re-authenticating interactively")
                self._token = None
                token = self._ensure_token(force_legacy=True)
                response = self.session.post(
                    url, json=body, headers=self._headers(token), timeout=self.timeout
                )
        except requests.RequestException as e:
            raise KustoError(
                f"Request to {url} failed: {LogSanitizer.sanitize_exception(e)}"
            ) from e

        if not response.ok:
            payload = self._error_payload(response)
            raise KustoError(
                f"Kusto request failed with HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        try:
            return response.json()
        except ValueError as e:
            raise KustoError("Kusto returned a non-JSON response", response.status_code) from e

    def query(
        self,
        text: str,
        database: str | None = None,
        remove_empty: bool = False,
        dedupe: bool = False,
    ) -> ResultTable:
        """Run a KQL query and return its primary result.

        Raises:
            KustoError: On HTTP, payload or query errors
        """
        db = database or self.database
        if not db:
            raise KustoError("A database is required for queries")

        frames = self._post("/v2/rest/query", {"db": db, "csl": text})
        for frame in frames or []:
            if frame.get("FrameType") == "DataSetCompletion" and frame.get("HasErrors"):
                raise KustoError(
                    "Query completed with errors", payload=frame.get("OneApiErrors", frame)
                )

        try:
            table = ResultTable.from_v2(frames)
        except ResultTableError as e:
            raise KustoError(str(e), payload=frames) from e
        return shape_table(table, remove_empty=remove_empty, dedupe=dedupe)

    def execute_mgmt(
        self,
        command: str,
        database: str | None = None,
        remove_empty: bool = False,
        dedupe: bool = False,
    ) -> ResultTable:
        """Run a management command (``.show ...``) and return its first table."""
        body: dict[str, Any] = {"csl": command}
        db = database or self.database
        if db:
            body["db"] = db

        payload = self._post("/v1/rest/mgmt", body)
        try:
            table = ResultTable.from_v1(payload)
        except ResultTableError as e:
            raise KustoError(str(e), payload=payload) from e
        return shape_table(table, remove_empty=remove_empty, dedupe=dedupe)


__all__ = ["KustoClient", "KustoError", "normalize_cluster_url"]
