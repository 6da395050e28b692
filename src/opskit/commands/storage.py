"""Storage CLI commands.

This module provides commands for Azure Storage accounts:
- List storage accounts
- List blob containers
- Generate container SAS tokens
"""

import logging

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import confirm_or_abort, fail, require_subscription
from opskit.modules.interaction_handler import CLIInteractionHandler
from opskit.storage_manager import MAX_SAS_HOURS, StorageManager, StorageManagerError

logger = logging.getLogger(__name__)


def _manager(ctx: click.Context, subscription: str | None) -> StorageManager:
    return StorageManager.for_subscription(
        require_subscription(ctx, subscription), interaction=CLIInteractionHandler()
    )


@click.group(name="storage", cls=OpskitGroup)
def storage_group():
    """Inspect storage accounts and issue container SAS tokens.

    ACCOUNT may be a name prefix; when several accounts match you are asked
    to pick one.

    \b
    EXAMPLES:
        $ opskit storage list --rg data
        $ opskit storage containers mydata
        $ opskit storage sas mydata logs --permissions rl --hours 8
    """
    pass


@storage_group.command(name="list")
@click.option("--resource-group", "--rg", help="Limit to one resource group")
@click.option("--subscription", help="Azure subscription ID")
@click.pass_context
def list_accounts(ctx: click.Context, resource_group: str | None, subscription: str | None):
    """List storage accounts."""
    try:
        accounts = _manager(ctx, subscription).list_accounts(resource_group)
    except StorageManagerError as e:
        fail(str(e), e)

    if not accounts:
        click.echo("No storage accounts found.")
        return

    table = Table(title="Storage Accounts", show_header=True, header_style="bold")
    for column in ("Name", "Resource Group", "Location", "Kind", "SKU"):
        table.add_column(column)
    for account in accounts:
        table.add_row(
            account.name,
            account.resource_group,
            account.location,
            account.kind or "-",
            account.sku or "-",
        )
    Console().print(table)


@storage_group.command(name="containers")
@click.argument("account")
@click.option("--resource-group", "--rg", help="Resource group of the account")
@click.option("--subscription", help="Azure subscription ID")
@click.pass_context
def list_containers(ctx: click.Context, account: str, resource_group: str | None, subscription: str | None):
    """List blob containers of ACCOUNT."""
    try:
        manager = _manager(ctx, subscription)
        info = manager.resolve_account(account, resource_group)
        containers = manager.list_containers(info)
    except StorageManagerError as e:
        fail(str(e), e)

    if not containers:
        click.echo(f"No containers in '{info.name}'.")
        return

    table = Table(title=f"Containers in {info.name}", show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Public Access")
    table.add_column("Last Modified")
    for container in containers:
        table.add_row(
            container["name"],
            container["public_access"],
            str(container["last_modified"] or "-"),
        )
    Console().print(table)


@storage_group.command(name="sas")
@click.argument("account")
@click.argument("container")
@click.option("--permissions", default="r", show_default=True, help="Letters from 'racwdl'")
@click.option("--hours", type=int, default=1, show_default=True, help=f"Lifetime, 1-{MAX_SAS_HOURS} hours")
@click.option(
    "--account-key",
    "use_account_key",
    is_flag=True,
    help="Sign with the account key instead of a user delegation key",
)
@click.option("--resource-group", "--rg", help="Resource group of the account")
@click.option("--subscription", help="Azure subscription ID")
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would be issued without signing")
@click.pass_context
def generate_sas(ctx: click.Context, account: str, container: str, permissions: str, hours: int,
                 use_account_key: bool, resource_group: str | None, subscription: str | None,
                 force: bool, dry_run: bool):
    """Generate a SAS URL for CONTAINER in ACCOUNT."""
    try:
        manager = _manager(ctx, subscription)
        info = manager.resolve_account(account, resource_group)
        plan = manager.generate_container_sas(
            info,
            container,
            permissions=permissions,
            expiry_hours=hours,
            use_user_delegation=not use_account_key,
            dry_run=True,
        )
        click.echo(
            f"SAS for {plan.account}/{plan.container}: permissions={plan.permissions}, "
            f"expires {plan.expiry.isoformat()}, signed with {plan.method}"
        )
        if dry_run:
            click.echo("[dry-run] No token issued.")
            return

        confirm_or_abort("Issue this SAS token?", force)
        grant = manager.generate_container_sas(
            info,
            container,
            permissions=permissions,
            expiry_hours=hours,
            use_user_delegation=not use_account_key,
        )
    except StorageManagerError as e:
        fail(str(e), e)
    click.echo(grant.url)
