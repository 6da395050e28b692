"""Shared helper functions for CLI commands.

Functions in this module should be:
- Side-effect minimal
- Reusable across multiple command groups
"""

import logging
import sys
from typing import NoReturn

import click

from opskit.config_manager import ConfigError, ConfigManager, OpskitConfig

logger = logging.getLogger(__name__)


def config_path_from(ctx: click.Context) -> str | None:
    """Return the --config path given to the root command, if any."""
    root = ctx.find_root()
    if root.obj and isinstance(root.obj, dict):
        return root.obj.get("config_path")
    return None


def load_config(ctx: click.Context) -> OpskitConfig:
    """Load configuration for the current invocation, exiting on errors."""
    try:
        return ConfigManager.load_config(config_path_from(ctx))
    except ConfigError as e:
        fail(str(e))


def require_subscription(ctx: click.Context, cli_value: str | None) -> str:
    try:
        subscription = ConfigManager.get_subscription_id(cli_value, config_path_from(ctx))
    except ConfigError as e:
        fail(str(e))
    if not subscription:
        fail(
            "Subscription required. Use --subscription, set subscription_id in config, "
            "or export AZURE_SUBSCRIPTION_ID."
        )
    return subscription


def require_resource_group(ctx: click.Context, cli_value: str | None) -> str:
    try:
        resource_group = ConfigManager.get_resource_group(cli_value, config_path_from(ctx))
    except ConfigError as e:
        fail(str(e))
    if not resource_group:
        fail("Resource group required. Use --resource-group or set in config.")
    return resource_group


def confirm_or_abort(message: str, force: bool) -> None:
    """Ask for confirmation unless ``force``; exit 0 when declined."""
    if force:
        return
    if not click.confirm(message, default=False):
        click.echo("Cancelled.")
        sys.exit(0)


def fail(message: str, exc: Exception | None = None) -> NoReturn:
    """Print ``Error: message`` to stderr and exit 1."""
    if exc is not None:
        logger.debug("Command failed", exc_info=exc)
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def warn(message: str) -> None:
    click.secho(f"Warning: {message}", fg="yellow", err=True)
