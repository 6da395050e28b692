"""
Shared test fixtures and configuration for opskit tests.

This module provides common fixtures used across all test types:
- Temporary home and config directories
- Guards against real Azure credential use
- JWT builders for auth-chain tests
- Fake load balancer models
"""

import base64
import json
import time
from typing import Any
from unittest.mock import Mock, patch

import pytest
from azure.mgmt.network.models import (
    BackendAddressPool,
    FrontendIPConfiguration,
    LoadBalancer,
    LoadBalancingRule,
    OutboundRule,
    Probe,
    SubResource,
)

from opskit.config_manager import ConfigManager

LB_ID = "/subscriptions/sub-id/resourceGroups/web-rg/providers/Microsoft.Network/loadBalancers/web-lb"
TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"


# ============================================================================
# ENVIRONMENT ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def temp_home_dir(tmp_path, monkeypatch):
    """Temporary home directory with config paths redirected into it.

    Tests should NEVER read or modify the real ~/.opskit directory.
    """
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    config_dir = home_dir / ".opskit"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    for var in (
        "AZURE_SUBSCRIPTION_ID",
        "AZURE_CLIENT_SECRET",
        "OPSKIT_CLIENT_SECRET",
        "IDENTITY_ENDPOINT",
        "MSI_ENDPOINT",
        "AZUREPS_HOST_ENVIRONMENT",
    ):
        monkeypatch.delenv(var, raising=False)
    return home_dir


@pytest.fixture(autouse=True)
def no_real_azure_credentials():
    """Fail loudly instead of reaching Azure with a real credential."""
    with patch(
        "opskit.credential_factory.CredentialFactory.create_management_credential",
        side_effect=AssertionError("Tests must not create real Azure credentials"),
    ) as mock:
        yield mock


# ============================================================================
# TOKEN FIXTURES
# ============================================================================


def _b64(data: dict[str, Any]) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def make_jwt(**claims: Any) -> str:
    """Build an unsigned JWT carrying ``claims``."""
    header = {"alg": "none", "typ": "JWT"}
    return f"{_b64(header)}.{_b64(claims)}.sig"


@pytest.fixture
def jwt_factory():
    return make_jwt


@pytest.fixture
def future_expiry():
    return time.time() + 3600


# ============================================================================
# LOAD BALANCER FIXTURES
# ============================================================================


def sub(kind: str, name: str) -> SubResource:
    return SubResource(id=f"{LB_ID}/{kind}/{name}")


def make_rule(name: str = "https", **overrides: Any) -> LoadBalancingRule:
    values = {
        "name": name,
        "protocol": "Tcp",
        "frontend_port": 443,
        "backend_port": 443,
        "idle_timeout_in_minutes": 4,
        "enable_floating_ip": False,
        "disable_outbound_snat": False,
        "enable_tcp_reset": False,
        "load_distribution": "Default",
        "frontend_ip_configuration": sub("frontendIPConfigurations", "fe-public"),
        "backend_address_pool": sub("backendAddressPools", "web-pool"),
        "probe": sub("probes", "https-probe"),
    }
    values.update(overrides)
    return LoadBalancingRule(**values)


def make_load_balancer(
    rules: list[LoadBalancingRule] | None = None,
    probes: list[Probe] | None = None,
    outbound: bool = False,
    extra_frontends: list[str] | None = None,
) -> LoadBalancer:
    frontends = [FrontendIPConfiguration(name="fe-public", id=f"{LB_ID}/frontendIPConfigurations/fe-public")]
    for name in extra_frontends or []:
        frontends.append(FrontendIPConfiguration(name=name, id=f"{LB_ID}/frontendIPConfigurations/{name}"))
    lb = LoadBalancer(
        location="eastus",
        frontend_ip_configurations=frontends,
        backend_address_pools=[BackendAddressPool(name="web-pool", id=f"{LB_ID}/backendAddressPools/web-pool")],
        probes=probes
        if probes is not None
        else [
            Probe(
                name="https-probe",
                id=f"{LB_ID}/probes/https-probe",
                protocol="Https",
                port=443,
                request_path="/health",
                interval_in_seconds=15,
                number_of_probes=2,
            )
        ],
        load_balancing_rules=rules if rules is not None else [],
        outbound_rules=[
            OutboundRule(
                name="outbound-all",
                protocol="All",
                frontend_ip_configurations=[sub("frontendIPConfigurations", "fe-public")],
                backend_address_pool=sub("backendAddressPools", "web-pool"),
            )
        ]
        if outbound
        else [],
    )
    # name is read-only on the SDK model
    lb.name = "web-lb"
    return lb


@pytest.fixture
def network_client():
    """Mock NetworkManagementClient whose writes echo the submitted model."""
    client = Mock()

    def create_or_update(resource_group, name, lb):
        poller = Mock()
        poller.result.return_value = lb
        return poller

    client.load_balancers.begin_create_or_update.side_effect = create_or_update
    return client


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def lb_factory():
    return make_load_balancer
