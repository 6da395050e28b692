"""Monitoring CLI commands.

This module provides commands for watching the local machine:
- Processes starting and exiting
- Listening TCP ports opening and closing
- CPU, memory and disk utilization
"""

import logging
import time

import click
from rich.console import Console
from rich.table import Table

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail, load_config
from opskit.process_watcher import (
    CPU_SAMPLE_SECONDS,
    PortWatcher,
    ProcessWatcher,
    WatchContext,
    WatchError,
    WatchEvents,
    system_snapshot,
)

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return time.strftime("%H:%M:%S")


def _print_process_events(events: WatchEvents) -> None:
    for record in events.started:
        click.secho(f"{_timestamp()} + {record.pid} {record.name} {record.cmdline}".rstrip(), fg="green")
    for record in events.exited:
        click.secho(f"{_timestamp()} - {record.pid} {record.name}", fg="red")


def _print_port_events(events: WatchEvents) -> None:
    for record in events.started:
        owner = f" (pid {record.pid})" if record.pid else ""
        click.secho(f"{_timestamp()} + {record.address}:{record.port}{owner}", fg="green")
    for record in events.exited:
        click.secho(f"{_timestamp()} - {record.address}:{record.port}", fg="red")


@click.group(name="watch", cls=OpskitGroup)
def watch_group():
    """Watch local processes, ports and system load.

    Watchers run until Ctrl+C unless --iterations is given.

    \b
    EXAMPLES:
        $ opskit watch processes --name "python*"
        $ opskit watch ports 80 443 --initial
        $ opskit watch system --iterations 5
    """
    pass


@watch_group.command(name="processes")
@click.option("--name", "name_filter", help="Substring or glob matched against process names")
@click.option("--interval", type=float, help="Seconds between polls (default: config poll_interval)")
@click.option("--iterations", type=int, help="Stop after N polls")
@click.option("--initial", is_flag=True, help="Report processes already running at start")
@click.pass_context
def watch_processes(ctx: click.Context, name_filter: str | None, interval: float | None,
                    iterations: int | None, initial: bool):
    """Report processes starting and exiting."""
    config = load_config(ctx)
    try:
        watcher = ProcessWatcher(
            name_filter=name_filter,
            interval=interval or config.poll_interval,
            report_initial=initial,
        )
        click.echo(f"Watching processes{f' matching {name_filter!r}' if name_filter else ''}... (Ctrl+C to stop)")
        watcher.run(WatchContext(), iterations=iterations, on_events=_print_process_events)
    except WatchError as e:
        fail(str(e), e)


@watch_group.command(name="ports")
@click.argument("ports", nargs=-1, type=click.IntRange(1, 65535))
@click.option("--interval", type=float, help="Seconds between polls (default: config poll_interval)")
@click.option("--iterations", type=int, help="Stop after N polls")
@click.option("--initial", is_flag=True, help="Report ports already listening at start")
@click.pass_context
def watch_ports(ctx: click.Context, ports: tuple[int, ...], interval: float | None,
                iterations: int | None, initial: bool):
    """Report listening TCP PORTS opening and closing (all ports if none given)."""
    config = load_config(ctx)
    try:
        watcher = PortWatcher(
            ports=list(ports) or None,
            interval=interval or config.poll_interval,
            report_initial=initial,
        )
        click.echo("Watching listening ports... (Ctrl+C to stop)")
        watcher.run(WatchContext(), iterations=iterations, on_events=_print_port_events)
    except WatchError as e:
        fail(str(e), e)


@watch_group.command(name="system")
@click.option("--interval", type=float, help="Seconds between samples (default: config poll_interval)")
@click.option("--iterations", type=int, default=1, show_default=True, help="Number of samples")
@click.option("--disk", "disk_path", default="/", show_default=True, help="Filesystem to report")
@click.pass_context
def watch_system(ctx: click.Context, interval: float | None, iterations: int, disk_path: str):
    """Sample CPU, memory and disk utilization."""
    config = load_config(ctx)
    delay = interval or config.poll_interval
    table = Table(show_header=True, header_style="bold")
    for column in ("Time", "CPU %", "Memory %", "Disk %"):
        table.add_column(column)

    try:
        for sample in range(iterations):
            # later samples measure CPU since the previous call, across the sleep
            cpu_interval = CPU_SAMPLE_SECONDS if sample == 0 else None
            snapshot = system_snapshot(disk_path, cpu_interval=cpu_interval)
            table.add_row(
                _timestamp(),
                f"{snapshot['cpu_percent']:.1f}",
                f"{snapshot['memory_percent']:.1f}",
                f"{snapshot['disk_percent']:.1f}",
            )
            if sample < iterations - 1:
                time.sleep(delay)
    except KeyboardInterrupt:
        click.echo("\nStopped by user.")
    except OSError as e:
        fail(f"Cannot read system counters: {e}", e)
    Console().print(table)
