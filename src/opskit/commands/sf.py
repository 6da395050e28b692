"""Service Fabric CLI commands.

This module provides read-only diagnostics for a Service Fabric cluster:
- Cluster health with unhealthy evaluations
- Node list
- Application list
"""

import logging
from collections.abc import Callable

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail
from opskit.sf_diagnostics import (
    ServiceFabricClient,
    ServiceFabricError,
    summarize_health,
    unhealthy_nodes,
)

logger = logging.getLogger(__name__)


def cluster_options(func: Callable) -> Callable:
    options = [
        click.option("--endpoint", required=True, help="Management endpoint, e.g. https://host:19080"),
        click.option("--cert", "cert_path", type=click.Path(exists=True, dir_okay=False), help="Client certificate (PEM)"),
        click.option("--key", "key_path", type=click.Path(exists=True, dir_okay=False), help="Private key if not in --cert"),
        click.option("--ca", "ca_path", type=click.Path(exists=True, dir_okay=False), help="CA bundle for the server certificate"),
        click.option("--insecure", is_flag=True, help="Skip server certificate verification"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _client(endpoint: str, cert_path: str | None, key_path: str | None,
            ca_path: str | None, insecure: bool) -> ServiceFabricClient:
    if insecure:
        click.secho("Warning: server certificate verification disabled", fg="yellow", err=True)
    verify: bool | str = False if insecure else (ca_path or True)
    return ServiceFabricClient(endpoint, cert_path=cert_path, key_path=key_path, verify=verify)


@click.group(name="sf", cls=OpskitGroup)
def sf_group():
    """Service Fabric cluster diagnostics.

    \b
    EXAMPLES:
        $ opskit sf health --endpoint https://mycluster:19080 --cert client.pem
        $ opskit sf nodes --endpoint https://mycluster:19080 --cert client.pem --unhealthy
    """
    pass


@sf_group.command(name="health")
@cluster_options
def health(endpoint: str, cert_path: str | None, key_path: str | None, ca_path: str | None, insecure: bool):
    """Show aggregated cluster health and unhealthy evaluations."""
    try:
        client = _client(endpoint, cert_path, key_path, ca_path, insecure)
        cluster_health = client.get_cluster_health()
    except ServiceFabricError as e:
        fail(str(e), e)

    state = cluster_health.get("AggregatedHealthState", "Unknown")
    color = "green" if state == "Ok" else "yellow" if state == "Warning" else "red"
    click.secho(f"Cluster health: {state}", fg=color)
    for line in summarize_health(cluster_health):
        click.echo(f"  {line}")


@sf_group.command(name="nodes")
@cluster_options
@click.option("--unhealthy", is_flag=True, help="Only nodes that are down or not Ok")
def nodes(endpoint: str, cert_path: str | None, key_path: str | None, ca_path: str | None,
          insecure: bool, unhealthy: bool):
    """List cluster nodes."""
    try:
        node_list = _client(endpoint, cert_path, key_path, ca_path, insecure).get_nodes()
    except ServiceFabricError as e:
        fail(str(e), e)
    if unhealthy:
        node_list = unhealthy_nodes(node_list)

    table = Table(show_header=True, header_style="bold")
    for column in ("Name", "Type", "IP", "Status", "Health", "Fault Domain", "Upgrade Domain"):
        table.add_column(column)
    for node in node_list:
        table.add_row(
            node.get("Name", ""),
            node.get("Type", ""),
            node.get("IpAddressOrFQDN", ""),
            node.get("NodeStatus", ""),
            node.get("HealthState", ""),
            node.get("FaultDomain", ""),
            node.get("UpgradeDomain", ""),
        )
    Console().print(table)
    click.echo(f"{len(node_list)} node(s)")


@sf_group.command(name="apps")
@cluster_options
def applications(endpoint: str, cert_path: str | None, key_path: str | None, ca_path: str | None, insecure: bool):
    """List deployed applications."""
    try:
        apps = _client(endpoint, cert_path, key_path, ca_path, insecure).get_applications()
    except ServiceFabricError as e:
        fail(str(e), e)

    table = Table(show_header=True, header_style="bold")
    for column in ("Name", "Type", "Version", "Status", "Health"):
        table.add_column(column)
    for app in apps:
        table.add_row(
            app.get("Name", ""),
            app.get("TypeName", ""),
            app.get("TypeVersion", ""),
            app.get("Status", ""),
            app.get("HealthState", ""),
        )
    Console().print(table)
