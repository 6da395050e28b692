"""Tag management CLI commands.

This module provides commands for managing Azure tags on resource groups
and resources:
- List tags
- Add tags (merge)
- Remove tags
- Replace all tags
"""

import logging
from collections.abc import Callable

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import confirm_or_abort, fail, require_subscription
from opskit.tag_manager import TagManager, TagManagerError, TagSet

logger = logging.getLogger(__name__)


def _manager(ctx: click.Context, subscription: str | None) -> TagManager:
    return TagManager.for_subscription(require_subscription(ctx, subscription))


def _print_diff(current: dict[str, str], planned: dict[str, str]) -> None:
    diff = TagManager.diff(current, planned)
    for key, value in diff["added"].items():
        click.echo(f"  + {key}={value}")
    for key, (old, new) in diff["changed"].items():
        click.echo(f"  ~ {key}: {old} -> {new}")
    for key, value in diff["removed"].items():
        click.echo(f"  - {key}={value}")
    if not any(diff.values()):
        click.echo("  (no changes)")


def scope_options(func: Callable) -> Callable:
    func = click.option("--subscription", help="Azure subscription ID")(func)
    return func


@click.group(name="tag", cls=OpskitGroup)
def tag_group():
    """Manage Azure resource tags.

    SCOPE is a resource group name or a full resource ID.

    \b
    COMMANDS:
        list       List tags
        add        Add tags (merge with existing)
        remove     Remove tags by key
        replace    Replace all tags

    \b
    EXAMPLES:
        $ opskit tag list my-rg
        $ opskit tag add my-rg environment=production team=backend
        $ opskit tag remove my-rg environment
        $ opskit tag replace /subscriptions/.../virtualMachines/vm1 owner=ops --force
    """
    pass


@tag_group.command(name="list")
@click.argument("scope")
@scope_options
@click.pass_context
def list_tags(ctx: click.Context, scope: str, subscription: str | None):
    """List tags at a scope."""
    try:
        tags = _manager(ctx, subscription).get_tags(scope)
    except TagManagerError as e:
        fail(str(e), e)

    if not tags:
        click.echo(f"No tags on '{scope}'.")
        return

    table = Table(title=f"Tags on {scope}", show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(tags):
        table.add_row(key, tags[key])
    Console().print(table)


@tag_group.command(name="add")
@click.argument("scope")
@click.argument("tags", nargs=-1, required=True)
@scope_options
@click.option("--dry-run", is_flag=True, help="Show the resulting tags without applying")
@click.pass_context
def add_tags(ctx: click.Context, scope: str, tags: tuple[str, ...], subscription: str | None, dry_run: bool):
    """Add key=value tags, keeping existing ones.

    \b
    Examples:
      $ opskit tag add my-rg environment=production
      $ opskit tag add my-rg description="Web tier"
    """
    try:
        tag_set = TagSet.parse_assignments(tags)
        manager = _manager(ctx, subscription)
        if dry_run:
            current = manager.get_tags(scope)
            planned = manager.add_tags(scope, tag_set, dry_run=True)
            click.echo(f"[dry-run] Tags on '{scope}' would become:")
            _print_diff(current, planned)
            return
        result = manager.add_tags(scope, tag_set)
    except TagManagerError as e:
        fail(str(e), e)
    click.echo(f"✓ '{scope}' now has {len(result)} tag(s)")


@tag_group.command(name="remove")
@click.argument("scope")
@click.argument("keys", nargs=-1, required=True)
@scope_options
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show the resulting tags without applying")
@click.pass_context
def remove_tags(ctx: click.Context, scope: str, keys: tuple[str, ...], subscription: str | None,
                force: bool, dry_run: bool):
    """Remove tags by key."""
    try:
        manager = _manager(ctx, subscription)
        if dry_run:
            current = manager.get_tags(scope)
            planned = manager.remove_tags(scope, list(keys), dry_run=True)
            click.echo(f"[dry-run] Tags on '{scope}' would become:")
            _print_diff(current, planned)
            return
        confirm_or_abort(f"Remove tag(s) {', '.join(keys)} from '{scope}'?", force)
        result = manager.remove_tags(scope, list(keys))
    except TagManagerError as e:
        fail(str(e), e)
    click.echo(f"✓ '{scope}' now has {len(result)} tag(s)")


@tag_group.command(name="replace")
@click.argument("scope")
@click.argument("tags", nargs=-1)
@scope_options
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show the resulting tags without applying")
@click.pass_context
def replace_tags(ctx: click.Context, scope: str, tags: tuple[str, ...], subscription: str | None,
                 force: bool, dry_run: bool):
    """Replace every tag at a scope (no TAGS clears them all)."""
    try:
        tag_set = TagSet.parse_assignments(tags)
        manager = _manager(ctx, subscription)
        current = manager.get_tags(scope)
        if dry_run:
            click.echo(f"[dry-run] Tags on '{scope}' would become:")
            _print_diff(current, manager.replace_tags(scope, tag_set, dry_run=True))
            return
        _print_diff(current, dict(tag_set))
        confirm_or_abort(f"Replace all tags on '{scope}'?", force)
        result = manager.replace_tags(scope, tag_set)
    except TagManagerError as e:
        fail(str(e), e)
    click.echo(f"✓ '{scope}' now has {len(result)} tag(s)")
