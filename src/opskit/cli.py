"""CLI entry point for opskit.

This module wires the command groups together and holds the small
configuration commands.

Commands:
    opskit lb       Load balancer rules and probes
    opskit kusto    Kusto queries
    opskit tag      Resource tags
    opskit storage  Storage accounts and SAS
    opskit env      .env files
    opskit watch    Local process/port/system monitoring
    opskit batch    Parallel fan-out
    opskit sf       Service Fabric diagnostics
    opskit util     Utilities
    opskit config   Show and set defaults
"""

import logging

import click
from rich.console import Console
from rich.table import Table

from opskit import __version__
from opskit.click_group import OpskitGroup
from opskit.commands import (
    batch_group,
    env_group,
    kusto_group,
    lb_group,
    sf_group,
    storage_group,
    tag_group,
    util_group,
    watch_group,
)
from opskit.commands.cli_helpers import config_path_from, fail
from opskit.config_manager import ConfigError, ConfigManager

logger = logging.getLogger(__name__)


@click.group(
    cls=OpskitGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Config file (default: ~/.opskit/config.toml)",
)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """opskit - Azure and operations automation commands.

    \b
    AZURE COMMANDS:
        lb          Manage load balancer rules and health probes
        kusto       Query Azure Data Explorer
        tag         Manage resource tags
        storage     List storage accounts, issue container SAS tokens
        sf          Service Fabric cluster diagnostics

    \b
    LOCAL COMMANDS:
        env         Load .env files and run commands with them
        watch       Watch processes, ports and system load
        batch       Run a command against many targets in parallel
        util        GUIDs, file search, certificate conversion, log merging

    \b
    CONFIGURATION:
        Config file: ~/.opskit/config.toml
        Set defaults: opskit config set default_resource_group my-rg

    For help on any command: opskit <command> --help
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        # Azure SDK HTTP logging is noisy even at INFO
        logging.getLogger("azure").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


@main.group(name="config", cls=OpskitGroup)
def config_group():
    """Show and set configuration defaults."""
    pass


@config_group.command(name="show")
@click.pass_context
def config_show(ctx: click.Context):
    """Show the effective configuration."""
    try:
        config = ConfigManager.load_config(config_path_from(ctx))
        path = ConfigManager.get_config_path(config_path_from(ctx))
    except ConfigError as e:
        fail(str(e), e)

    table = Table(title=str(path), show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    Console().print(table)


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Set KEY to VALUE in the config file."""
    try:
        ConfigManager.update_config(
            config_path_from(ctx), **{key: ConfigManager.coerce_value(key, value)}
        )
    except ConfigError as e:
        fail(str(e), e)
    click.echo(f"✓ {key} = {value}")


main.add_command(lb_group)
main.add_command(kusto_group)
main.add_command(tag_group)
main.add_command(storage_group)
main.add_command(env_group)
main.add_command(watch_group)
main.add_command(batch_group)
main.add_command(sf_group)
main.add_command(util_group)


if __name__ == "__main__":
    main()
