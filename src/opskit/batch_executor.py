"""Batch executor module for fanning an operation out over many targets.

This module provides:
- Target lists from arguments or a file
- Target selection by glob pattern
- Parallel execution bounded by a throttle limit
- Per-target error handling
- Result aggregation

Security:
- No shell=True in subprocess calls
- Timeout enforcement
- Resource limits (max_workers)
"""

import fnmatch
import logging
import shlex
import subprocess
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TARGET_PLACEHOLDER = "{target}"


class BatchExecutorError(Exception):
    """Raised when batch operations fail."""

    pass


@dataclass
class BatchOperationResult:
    """Result of a batch operation on a single target."""

    target: str
    success: bool
    message: str
    output: str | None = None
    duration: float = 0.0


class BatchResult:
    """Aggregated results from batch operation."""

    def __init__(self, results: list[BatchOperationResult]):
        self.results = results

    @property
    def total(self) -> int:
        """Total number of operations."""
        return len(self.results)

    @property
    def succeeded(self) -> int:
        """Number of successful operations."""
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        """Number of failed operations."""
        return sum(1 for r in self.results if not r.success)

    @property
    def all_succeeded(self) -> bool:
        """Check if all operations succeeded."""
        return all(r.success for r in self.results) if self.results else True

    def get_failures(self) -> list[BatchOperationResult]:
        return [r for r in self.results if not r.success]

    def get_successes(self) -> list[BatchOperationResult]:
        return [r for r in self.results if r.success]

    def format_summary(self) -> str:
        """Format summary of results."""
        return f"Total: {self.total}, Succeeded: {self.succeeded}, Failed: {self.failed}"


def read_targets_file(path: str | Path) -> list[str]:
    """Read one target per line; blank lines and '#' comments are ignored.

    Raises:
        BatchExecutorError: If the file cannot be read
    """
    try:
        lines = Path(path).expanduser().read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise BatchExecutorError(f"Failed to read targets file {path}: {e}") from e

    targets = []
    for line in lines:
        line = line.split("#", 1)[0].strip()
        if line:
            targets.append(line)
    return targets


def select_by_pattern(targets: list[str], pattern: str) -> list[str]:
    """Select targets whose name matches a glob pattern."""
    return [t for t in targets if fnmatch.fnmatch(t, pattern)]


def dedupe_targets(targets: list[str]) -> list[str]:
    """Drop repeated targets, keeping first-seen order."""
    return list(dict.fromkeys(targets))


class BatchExecutor:
    """Execute one operation on multiple targets in parallel."""

    def __init__(self, max_workers: int = 10):
        """Initialize batch executor.

        Args:
            max_workers: Maximum number of parallel workers (throttle limit)

        Raises:
            BatchExecutorError: If max_workers is not positive
        """
        if max_workers < 1:
            raise BatchExecutorError(f"Throttle limit must be at least 1, got {max_workers}")
        self.max_workers = max_workers

    def execute(
        self,
        targets: list[str],
        operation: Callable[[str], Any],
        progress_callback: Callable[[str], None] | None = None,
    ) -> BatchResult:
        """Run ``operation(target)`` for every target.

        An operation may return a BatchOperationResult, a string (taken as
        output) or anything else (success). Exceptions become failed results.
        Results arrive in completion order.
        """
        if not targets:
            return BatchResult([])

        def run_one(target: str) -> BatchOperationResult:
            start_time = time.time()
            try:
                if progress_callback:
                    progress_callback(f"Running on {target}...")
                value = operation(target)
                duration = time.time() - start_time

                if isinstance(value, BatchOperationResult):
                    value.duration = value.duration or duration
                    result = value
                else:
                    result = BatchOperationResult(
                        target=target,
                        success=True,
                        message="OK",
                        output=value if isinstance(value, str) else None,
                        duration=duration,
                    )
            except Exception as e:
                result = BatchOperationResult(
                    target=target, success=False, message=str(e), duration=time.time() - start_time
                )

            if progress_callback:
                status = "✓" if result.success else "✗"
                progress_callback(f"{status} {target}: {result.message}")
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(run_one, t): t for t in targets}
            return BatchResult([future.result() for future in as_completed(futures)])

    def run_command(
        self,
        targets: list[str],
        command_template: str,
        timeout: int = 300,
        progress_callback: Callable[[str], None] | None = None,
    ) -> BatchResult:
        """Run a local command per target with ``{target}`` substituted.

        The template is split with shlex before substitution, so a target
        can never introduce extra arguments.

        Raises:
            BatchExecutorError: If the template is empty or unparseable
        """
        try:
            argv_template = shlex.split(command_template)
        except ValueError as e:
            raise BatchExecutorError(f"Invalid command template: {e}") from e
        if not argv_template:
            raise BatchExecutorError("Command template cannot be empty")

        def run_for_target(target: str) -> BatchOperationResult:
            argv = [arg.replace(TARGET_PLACEHOLDER, target) for arg in argv_template]
            try:
                completed = subprocess.run(
                    argv, capture_output=True, text=True, timeout=timeout, check=False
                )
            except subprocess.TimeoutExpired:
                return BatchOperationResult(
                    target=target, success=False, message=f"Timed out after {timeout}s"
                )
            except FileNotFoundError:
                return BatchOperationResult(
                    target=target, success=False, message=f"Command not found: {argv[0]}"
                )

            output = (completed.stdout or "") + (completed.stderr or "")
            return BatchOperationResult(
                target=target,
                success=completed.returncode == 0,
                message=f"Exit code: {completed.returncode}",
                output=output.strip() or None,
            )

        return self.execute(targets, run_for_target, progress_callback=progress_callback)


__all__ = [
    "BatchExecutor",
    "BatchExecutorError",
    "BatchOperationResult",
    "BatchResult",
    "dedupe_targets",
    "read_targets_file",
    "select_by_pattern",
]
