"""Environment file CLI commands.

This module provides commands for working with .env files:
- Show the variables a file defines (values masked)
- Run a command with a file loaded into its environment
"""

import logging
import os
import subprocess
import sys

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail, warn
from opskit.env_loader import EnvLoaderError, load_env_file, masked_items, read_env_file

logger = logging.getLogger(__name__)


@click.group(name="env", cls=OpskitGroup)
def env_group():
    """Load .env files.

    \b
    EXAMPLES:
        $ opskit env show .env
        $ opskit env run .env -- python manage.py migrate
        $ opskit env run .env --override -- ./deploy.sh
    """
    pass


@env_group.command(name="show")
@click.argument("file", type=click.Path(dir_okay=False))
def show_env(file: str):
    """Show variables defined in FILE with values masked."""
    try:
        values = read_env_file(file)
    except EnvLoaderError as e:
        fail(str(e), e)

    if not values:
        click.echo(f"No variables defined in {file}.")
        return

    table = Table(title=file, show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Value")
    table.add_column("Already set")
    for key, display in masked_items(values):
        table.add_row(key, display, "yes" if key in os.environ else "")
    Console().print(table)


@env_group.command(name="run", context_settings={"ignore_unknown_options": True})
@click.argument("file", type=click.Path(dir_okay=False))
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--override", is_flag=True, help="Overwrite variables already set")
def run_with_env(file: str, command: tuple[str, ...], override: bool):
    """Load FILE, then run COMMAND and exit with its exit code."""
    env = dict(os.environ)
    try:
        result = load_env_file(file, override=override, environ=env)
    except EnvLoaderError as e:
        fail(str(e), e)

    if result.skipped:
        warn(f"Kept existing value for: {', '.join(result.skipped)} (use --override)")
    logger.debug(f"Applied {len(result.applied)} variable(s) from {file}")

    try:
        completed = subprocess.run(list(command), env=env, check=False)
    except FileNotFoundError as e:
        fail(f"Command not found: {command[0]}", e)
    sys.exit(completed.returncode)
