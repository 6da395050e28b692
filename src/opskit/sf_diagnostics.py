"""Service Fabric cluster diagnostics over the HTTP management gateway.

Reads cluster health, nodes and applications with a client certificate and
summarizes unhealthy evaluations.

Usage:
    client = ServiceFabricClient("https://mycluster.westus.cloudapp.azure.com:19080",
                                 cert_path="client.pem")
    for line in summarize_health(client.get_cluster_health()):
        print(line)
"""

import logging
from typing import Any

import requests

from opskit.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

API_VERSION = "6.0"
DEFAULT_TIMEOUT = 60
HEALTHY_STATES = ("Ok",)


class ServiceFabricError(Exception):
    """Raised when the management gateway cannot be queried."""

    pass


class ServiceFabricClient:
    """Read-only client for the Service Fabric REST API."""

    def __init__(
        self,
        endpoint: str,
        cert_path: str | None = None,
        key_path: str | None = None,
        verify: bool | str = True,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        if not endpoint:
            raise ServiceFabricError("Cluster endpoint cannot be empty")
        if not endpoint.startswith(("https://", "http://")):
            endpoint = f"https://{endpoint}"
        self.endpoint = endpoint.rstrip("/")
        self.session = session or requests.Session()
        if cert_path:
            self.session.cert = (cert_path, key_path) if key_path else cert_path
        self.session.verify = verify
        self.timeout = timeout

    def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self.endpoint}/{path.lstrip('/')}"
        query = {"api-version": API_VERSION, **(params or {})}
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as e:
            raise ServiceFabricError(
                f"Request to {url} failed: {LogSanitizer.sanitize_exception(e)}"
            ) from e
        if not response.ok:
            raise ServiceFabricError(
                f"{url} returned HTTP {response.status_code}: {response.text[:500]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise ServiceFabricError(f"{url} returned a non-JSON response") from e

    def _get_paged(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        token = ""
        while True:
            params = {"ContinuationToken": token} if token else None
            page = self._get(path, params)
            items.extend(page.get("Items", []))
            token = page.get("ContinuationToken") or ""
            if not token:
                return items

    def get_cluster_health(self) -> dict[str, Any]:
        return self._get("$/GetClusterHealth")

    def get_nodes(self) -> list[dict[str, Any]]:
        return self._get_paged("Nodes")

    def get_applications(self) -> list[dict[str, Any]]:
        return self._get_paged("Applications")


def summarize_health(health: dict[str, Any]) -> list[str]:
    """List unhealthy evaluations as readable lines.

    Nested evaluations are indented under their parent.
    """
    lines: list[str] = []

    def walk(evaluations: list[dict[str, Any]], depth: int) -> None:
        for wrapper in evaluations or []:
            evaluation = wrapper.get("HealthEvaluation", wrapper)
            state = evaluation.get("AggregatedHealthState", "Unknown")
            kind = evaluation.get("Kind", "Unknown")
            description = evaluation.get("Description", "").strip()
            lines.append(f"{'  ' * depth}[{state}] {kind}: {description}")
            walk(evaluation.get("UnhealthyEvaluations", []), depth + 1)

    walk(health.get("UnhealthyEvaluations", []), 0)
    return lines


def unhealthy_nodes(nodes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Nodes whose health state is not Ok or that are not up."""
    return [
        node
        for node in nodes
        if node.get("HealthState") not in HEALTHY_STATES or node.get("NodeStatus") != "Up"
    ]


__all__ = [
    "ServiceFabricClient",
    "ServiceFabricError",
    "summarize_health",
    "unhealthy_nodes",
]
