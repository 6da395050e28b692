"""Local process, port and system monitoring.

Watchers poll with a fixed sleep and report what changed since the previous
poll. All state between polls lives in a WatchContext owned by the caller.

Usage:
    from opskit.process_watcher import ProcessWatcher, WatchContext

    watcher = ProcessWatcher(name_filter="python", interval=2.0)
    watcher.run(WatchContext(), on_events=print)
"""

import fnmatch
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import psutil

logger = logging.getLogger(__name__)

# psutil.cpu_percent needs a measurement window; the first call of a process has none
CPU_SAMPLE_SECONDS = 1.0


class WatchError(Exception):
    """Raised when a watcher cannot read system state."""

    pass


@dataclass(frozen=True)
class ProcessRecord:
    """One process as seen by a snapshot."""

    pid: int
    name: str
    username: str | None = None
    cmdline: str = ""


@dataclass(frozen=True)
class PortRecord:
    """One listening TCP socket."""

    port: int
    address: str
    pid: int | None = None


@dataclass
class WatchContext:
    """State carried between polls.

    ``observed`` maps a key (pid or port) to the record seen last time; it
    is None until the first poll establishes the baseline.
    """

    observed: dict[int, Any] | None = None
    polls: int = 0


@dataclass
class WatchEvents:
    """Differences found by one poll."""

    started: list[Any] = field(default_factory=list)
    exited: list[Any] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.started or self.exited)


def _matches(name: str, name_filter: str | None) -> bool:
    if not name_filter:
        return True
    if any(ch in name_filter for ch in "*?["):
        return fnmatch.fnmatch(name.lower(), name_filter.lower())
    return name_filter.lower() in name.lower()


def snapshot_processes(name_filter: str | None = None) -> dict[int, ProcessRecord]:
    """Return running processes keyed by pid.

    ``name_filter`` is a substring or a glob pattern, case-insensitive.
    Processes that exit or deny access during the scan are left out.
    """
    records: dict[int, ProcessRecord] = {}
    for proc in psutil.process_iter(["pid", "name", "username", "cmdline"]):
        try:
            info = proc.info
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        name = info.get("name") or ""
        if not _matches(name, name_filter):
            continue
        records[info["pid"]] = ProcessRecord(
            pid=info["pid"],
            name=name,
            username=info.get("username"),
            cmdline=" ".join(info.get("cmdline") or []),
        )
    return records


def snapshot_ports(ports: list[int] | None = None) -> dict[int, PortRecord]:
    """Return listening TCP ports keyed by port number.

    Raises:
        WatchError: If the platform denies access to the socket table
    """
    wanted = set(ports or [])
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied as e:
        raise WatchError("Access denied reading the socket table; try elevated rights") from e

    records: dict[int, PortRecord] = {}
    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        port = conn.laddr.port
        if wanted and port not in wanted:
            continue
        records.setdefault(port, PortRecord(port=port, address=conn.laddr.ip, pid=conn.pid))
    return records


def system_snapshot(
    disk_path: str = "/", cpu_interval: float | None = CPU_SAMPLE_SECONDS
) -> dict[str, float]:
    """CPU, memory and disk utilization in percent.

    With ``cpu_interval`` set, CPU load is measured over that many seconds
    (blocking). Pass None only when a previous call within this process has
    set the baseline; psutil then reports load since that call.
    """
    return {
        "cpu_percent": psutil.cpu_percent(interval=cpu_interval),
        "memory_percent": psutil.virtual_memory().percent,
        "disk_percent": psutil.disk_usage(disk_path).percent,
    }


class _PollingWatcher:
    """Shared poll/run loop; subclasses supply ``snapshot``."""

    def __init__(self, interval: float = 2.0, report_initial: bool = False):
        if interval <= 0:
            raise WatchError(f"Interval must be positive, got {interval}")
        self.interval = interval
        self.report_initial = report_initial

    def snapshot(self) -> dict[int, Any]:
        raise NotImplementedError

    def poll(self, context: WatchContext) -> WatchEvents:
        """Take a snapshot and diff it against ``context.observed``."""
        current = self.snapshot()
        previous = context.observed
        context.observed = current
        context.polls += 1

        if previous is None:
            if self.report_initial:
                return WatchEvents(started=list(current.values()))
            return WatchEvents()

        return WatchEvents(
            started=[record for key, record in current.items() if key not in previous],
            exited=[record for key, record in previous.items() if key not in current],
        )

    def run(
        self,
        context: WatchContext,
        iterations: int | None = None,
        on_events: Callable[[WatchEvents], None] | None = None,
    ) -> WatchContext:
        """Poll until ``iterations`` is reached or interrupted with Ctrl+C."""
        iteration = 0
        try:
            while iterations is None or iteration < iterations:
                events = self.poll(context)
                if events and on_events:
                    on_events(events)
                if iterations is None or iteration < iterations - 1:
                    time.sleep(self.interval)
                iteration += 1
        except KeyboardInterrupt:
            logger.info("Watch stopped by user.")
        return context


class ProcessWatcher(_PollingWatcher):
    """Report processes starting and exiting."""

    def __init__(
        self, name_filter: str | None = None, interval: float = 2.0, report_initial: bool = False
    ):
        super().__init__(interval=interval, report_initial=report_initial)
        self.name_filter = name_filter

    def snapshot(self) -> dict[int, ProcessRecord]:
        return snapshot_processes(self.name_filter)


class PortWatcher(_PollingWatcher):
    """Report listening TCP ports opening and closing."""

    def __init__(
        self, ports: list[int] | None = None, interval: float = 2.0, report_initial: bool = False
    ):
        super().__init__(interval=interval, report_initial=report_initial)
        self.ports = ports

    def snapshot(self) -> dict[int, PortRecord]:
        return snapshot_ports(self.ports)


__all__ = [
    "PortRecord",
    "PortWatcher",
    "ProcessRecord",
    "ProcessWatcher",
    "WatchContext",
    "WatchError",
    "WatchEvents",
    "snapshot_ports",
    "snapshot_processes",
    "system_snapshot",
]
