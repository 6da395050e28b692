"""Batch fan-out CLI commands.

This module provides commands for running one local command per target in
parallel, bounded by a throttle limit.
"""

import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from opskit.batch_executor import (
    BatchExecutor,
    BatchExecutorError,
    BatchResult,
    dedupe_targets,
    read_targets_file,
    select_by_pattern,
)
from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail, load_config

logger = logging.getLogger(__name__)


def print_batch_result(result: BatchResult, show_output: bool = False) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Message")
    table.add_column("Time", justify="right")
    for item in sorted(result.results, key=lambda r: r.target):
        status = "[green]✓[/green]" if item.success else "[red]✗[/red]"
        table.add_row(item.target, status, item.message, f"{item.duration:.1f}s")
    Console().print(table)

    if show_output:
        for item in sorted(result.results, key=lambda r: r.target):
            if item.output:
                click.echo(f"\n--- {item.target} ---\n{item.output}")

    click.echo(f"\n{result.format_summary()}")


@click.group(name="batch", cls=OpskitGroup)
def batch_group():
    """Run a command against many targets in parallel.

    \b
    EXAMPLES:
        $ opskit batch run "ping -c 1 {target}" host1 host2 host3
        $ opskit batch run "nslookup {target}" --targets-file hosts.txt --throttle 5
    """
    pass


@batch_group.command(name="run")
@click.argument("command_template")
@click.argument("targets", nargs=-1)
@click.option("--targets-file", type=click.Path(exists=True, dir_okay=False), help="One target per line")
@click.option("--pattern", help="Only targets matching this glob pattern")
@click.option("--throttle", type=int, help="Maximum parallel workers (default: config throttle_limit)")
@click.option("--timeout", type=int, default=300, show_default=True, help="Per-target timeout in seconds")
@click.option("--show-output", is_flag=True, help="Print each target's output")
@click.pass_context
def run_batch(ctx: click.Context, command_template: str, targets: tuple[str, ...],
              targets_file: str | None, pattern: str | None, throttle: int | None,
              timeout: int, show_output: bool):
    """Run COMMAND_TEMPLATE once per target, substituting {target}."""
    config = load_config(ctx)
    try:
        all_targets = list(targets)
        if targets_file:
            all_targets.extend(read_targets_file(targets_file))
        all_targets = dedupe_targets(all_targets)
        if pattern:
            all_targets = select_by_pattern(all_targets, pattern)
        if not all_targets:
            fail("No targets. Pass targets as arguments or use --targets-file.")

        executor = BatchExecutor(max_workers=throttle or config.throttle_limit)
        click.echo(f"Running on {len(all_targets)} target(s) with up to {executor.max_workers} in parallel...")
        result = executor.run_command(
            all_targets,
            command_template,
            timeout=timeout,
            progress_callback=lambda message: logger.debug(message),
        )
    except BatchExecutorError as e:
        fail(str(e), e)

    print_batch_result(result, show_output=show_output)
    if not result.all_succeeded:
        sys.exit(1)
