"""Load balancer CLI commands.

This module provides commands for managing load balancing rules and health
probes on an Azure load balancer:
- Add, update, remove and list rules
- Add, update, remove and list probes
- Show a diagnostics dump of the whole load balancer
"""

import logging
from collections.abc import Callable
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import (
    confirm_or_abort,
    fail,
    load_config,
    require_resource_group,
    require_subscription,
)
from opskit.lb_manager import (
    LBOperationResult,
    LBProbeSpec,
    LBRuleSpec,
    LoadBalancerError,
    LoadBalancerManager,
    format_diagnostics,
)
from opskit.modules.interaction_handler import CLIInteractionHandler

logger = logging.getLogger(__name__)


def lb_target_options(func: Callable) -> Callable:
    """Options shared by every lb command."""
    func = click.option("--subscription", help="Azure subscription ID")(func)
    func = click.option("--resource-group", "--rg", help="Azure resource group")(func)
    func = click.option("--lb", "lb_name", required=True, help="Load balancer name")(func)
    return func


def rule_options(func: Callable) -> Callable:
    options = [
        click.option("--frontend-port", type=int, help="Frontend port (0 with --protocol All)"),
        click.option("--backend-port", type=int, help="Backend port"),
        click.option(
            "--protocol", type=click.Choice(["Tcp", "Udp", "All"], case_sensitive=False)
        ),
        click.option("--idle-timeout", type=int, help="Idle timeout in minutes (4-30)"),
        click.option("--floating-ip/--no-floating-ip", default=None, help="Floating IP"),
        click.option(
            "--disable-outbound-snat/--enable-outbound-snat",
            default=None,
            help="Disable outbound SNAT on the frontend",
        ),
        click.option("--tcp-reset/--no-tcp-reset", default=None, help="TCP reset on idle"),
        click.option(
            "--load-distribution",
            type=click.Choice(["Default", "SourceIP", "SourceIPProtocol"], case_sensitive=False),
        ),
        click.option("--frontend-ip", help="Frontend IP configuration name"),
        click.option("--backend-pool", help="Backend address pool name"),
        click.option("--probe", "probe_name", help="Health probe name"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def probe_options(func: Callable) -> Callable:
    options = [
        click.option(
            "--protocol", type=click.Choice(["Tcp", "Http", "Https"], case_sensitive=False)
        ),
        click.option("--port", type=int, help="Probe port"),
        click.option("--interval", type=int, help="Probe interval in seconds (>= 5)"),
        click.option("--threshold", type=int, help="Consecutive failures before unhealthy"),
        click.option("--path", "request_path", help="Request path for Http/Https probes"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _rule_spec(params: dict[str, Any]) -> LBRuleSpec:
    return LBRuleSpec(
        frontend_port=params.get("frontend_port"),
        backend_port=params.get("backend_port"),
        protocol=params.get("protocol"),
        idle_timeout_in_minutes=params.get("idle_timeout"),
        enable_floating_ip=params.get("floating_ip"),
        disable_outbound_snat=params.get("disable_outbound_snat"),
        enable_tcp_reset=params.get("tcp_reset"),
        load_distribution=params.get("load_distribution"),
        frontend_ip_name=params.get("frontend_ip"),
        backend_pool_name=params.get("backend_pool"),
        probe_name=params.get("probe_name"),
    )


def _probe_spec(params: dict[str, Any]) -> LBProbeSpec:
    return LBProbeSpec(
        protocol=params.get("protocol"),
        port=params.get("port"),
        interval_in_seconds=params.get("interval"),
        number_of_probes=params.get("threshold"),
        request_path=params.get("request_path"),
    )


def _manager(
    ctx: click.Context, subscription: str | None, resource_group: str | None, lb_name: str
) -> LoadBalancerManager:
    config = load_config(ctx)
    return LoadBalancerManager.for_subscription(
        require_subscription(ctx, subscription),
        require_resource_group(ctx, resource_group),
        lb_name,
        interaction=CLIInteractionHandler(),
        auto_fix_snat=config.auto_fix_outbound_snat,
    )


def _report(result: LBOperationResult) -> None:
    click.echo(result.format_summary())
    if result.changed:
        click.echo(f"\n✓ {result.action} '{result.name}' {result.status}")


def _run(operation: Callable[[], LBOperationResult]) -> None:
    try:
        _report(operation())
    except LoadBalancerError as e:
        fail(str(e), e)


@click.group(name="lb", cls=OpskitGroup)
def lb_group():
    """Manage Azure load balancer rules and health probes.

    Adding a rule that already exists with identical settings does nothing.
    Adding one with different settings fails and lists every difference,
    unless --force is given.

    \b
    EXAMPLES:
        $ opskit lb add https --lb web-lb --rg web --frontend-port 443 --backend-port 443 --protocol Tcp
        $ opskit lb update https --lb web-lb --rg web --idle-timeout 25
        $ opskit lb add-probe https-probe --lb web-lb --rg web --protocol Https --port 443 --path /health
        $ opskit lb list --lb web-lb --rg web
        $ opskit lb show --lb web-lb --rg web
    """
    pass


@lb_group.command(name="list")
@lb_target_options
@click.pass_context
def list_rules(ctx: click.Context, lb_name: str, resource_group: str | None, subscription: str | None):
    """List load balancing rules."""
    try:
        rules = _manager(ctx, subscription, resource_group, lb_name).list_rules()
    except LoadBalancerError as e:
        fail(str(e), e)

    if not rules:
        click.echo(f"No load balancing rules on '{lb_name}'.")
        return

    table = Table(title=f"Rules on {lb_name}", show_header=True, header_style="bold")
    for column in ("Name", "Protocol", "Frontend", "Backend", "Frontend IP", "Pool", "Probe", "Idle", "SNAT off"):
        table.add_column(column)
    for rule in rules:
        table.add_row(
            rule["name"],
            str(rule["protocol"]),
            str(rule["frontend_port"]),
            str(rule["backend_port"]),
            rule["frontend_ip_name"] or "-",
            rule["backend_pool_name"] or "-",
            rule["probe_name"] or "-",
            str(rule["idle_timeout_in_minutes"]),
            "yes" if rule["disable_outbound_snat"] else "no",
        )
    Console().print(table)


@lb_group.command(name="add")
@click.argument("name")
@lb_target_options
@rule_options
@click.option("--force", is_flag=True, help="Update the rule if it exists with other settings")
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def add_rule(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
             subscription: str | None, force: bool, dry_run: bool, **params: Any):
    """Add a load balancing rule (idempotent)."""
    try:
        spec = _rule_spec(params)
    except LoadBalancerError as e:
        fail(str(e), e)
    manager = _manager(ctx, subscription, resource_group, lb_name)
    _run(lambda: manager.add_rule(name, spec, force=force, dry_run=dry_run))


@lb_group.command(name="update")
@click.argument("name")
@lb_target_options
@rule_options
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def update_rule(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
                subscription: str | None, dry_run: bool, **params: Any):
    """Update only the given settings of an existing rule."""
    try:
        spec = _rule_spec(params)
    except LoadBalancerError as e:
        fail(str(e), e)
    if not spec.specified():
        fail("Nothing to update. Specify at least one rule setting.")
    manager = _manager(ctx, subscription, resource_group, lb_name)
    _run(lambda: manager.update_rule(name, spec, dry_run=dry_run))


@lb_group.command(name="remove")
@click.argument("name")
@lb_target_options
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def remove_rule(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
                subscription: str | None, force: bool, dry_run: bool):
    """Remove a load balancing rule."""
    manager = _manager(ctx, subscription, resource_group, lb_name)
    if not dry_run:
        confirm_or_abort(f"Remove rule '{name}' from '{lb_name}'?", force)
    _run(lambda: manager.remove_rule(name, dry_run=dry_run))


@lb_group.command(name="list-probes")
@lb_target_options
@click.pass_context
def list_probes(ctx: click.Context, lb_name: str, resource_group: str | None, subscription: str | None):
    """List health probes and the rules using them."""
    try:
        probes = _manager(ctx, subscription, resource_group, lb_name).list_probes()
    except LoadBalancerError as e:
        fail(str(e), e)

    if not probes:
        click.echo(f"No health probes on '{lb_name}'.")
        return

    table = Table(title=f"Probes on {lb_name}", show_header=True, header_style="bold")
    for column in ("Name", "Protocol", "Port", "Path", "Interval", "Threshold", "Used by"):
        table.add_column(column)
    for probe in probes:
        table.add_row(
            probe["name"],
            str(probe["protocol"]),
            str(probe["port"]),
            probe["request_path"] or "-",
            str(probe["interval_in_seconds"]),
            str(probe["number_of_probes"]),
            ", ".join(probe["used_by"]) or "-",
        )
    Console().print(table)


@lb_group.command(name="add-probe")
@click.argument("name")
@lb_target_options
@probe_options
@click.option("--force", is_flag=True, help="Update the probe if it exists with other settings")
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def add_probe(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
              subscription: str | None, force: bool, dry_run: bool, **params: Any):
    """Add a health probe (idempotent)."""
    try:
        spec = _probe_spec(params)
    except LoadBalancerError as e:
        fail(str(e), e)
    manager = _manager(ctx, subscription, resource_group, lb_name)
    _run(lambda: manager.add_probe(name, spec, force=force, dry_run=dry_run))


@lb_group.command(name="update-probe")
@click.argument("name")
@lb_target_options
@probe_options
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def update_probe(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
                 subscription: str | None, dry_run: bool, **params: Any):
    """Update only the given settings of an existing probe."""
    try:
        spec = _probe_spec(params)
    except LoadBalancerError as e:
        fail(str(e), e)
    if not spec.specified():
        fail("Nothing to update. Specify at least one probe setting.")
    manager = _manager(ctx, subscription, resource_group, lb_name)
    _run(lambda: manager.update_probe(name, spec, dry_run=dry_run))


@lb_group.command(name="remove-probe")
@click.argument("name")
@lb_target_options
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would change without applying")
@click.pass_context
def remove_probe(ctx: click.Context, name: str, lb_name: str, resource_group: str | None,
                 subscription: str | None, force: bool, dry_run: bool):
    """Remove a health probe that no rule uses."""
    manager = _manager(ctx, subscription, resource_group, lb_name)
    if not dry_run:
        confirm_or_abort(f"Remove probe '{name}' from '{lb_name}'?", force)
    _run(lambda: manager.remove_probe(name, dry_run=dry_run))


@lb_group.command(name="show")
@lb_target_options
@click.pass_context
def show(ctx: click.Context, lb_name: str, resource_group: str | None, subscription: str | None):
    """Print frontends, pools, probes, rules and outbound rules."""
    try:
        lb = _manager(ctx, subscription, resource_group, lb_name).get_load_balancer()
    except LoadBalancerError as e:
        fail(str(e), e)
    click.echo(format_diagnostics(lb))
