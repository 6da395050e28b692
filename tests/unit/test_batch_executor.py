"""Unit tests for batch_executor module.

Tests cover:
- Target files, pattern selection and deduplication
- Parallel execution and result aggregation
- Per-target error handling
- Command template substitution
"""

import subprocess
import threading
from unittest.mock import Mock, patch

import pytest

from opskit.batch_executor import (
    BatchExecutor,
    BatchExecutorError,
    BatchOperationResult,
    BatchResult,
    dedupe_targets,
    read_targets_file,
    select_by_pattern,
)


class TestTargets:
    """Tests for target list helpers."""

    def test_read_targets_file(self, tmp_path):
        path = tmp_path / "hosts.txt"
        path.write_text("# web tier\nweb-01\n\nweb-02  # canary\n")
        assert read_targets_file(path) == ["web-01", "web-02"]

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(BatchExecutorError, match="Failed to read targets file"):
            read_targets_file(tmp_path / "missing.txt")

    def test_select_by_pattern(self):
        assert select_by_pattern(["web-01", "db-01", "web-02"], "web-*") == ["web-01", "web-02"]

    def test_dedupe_keeps_order(self):
        assert dedupe_targets(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


class TestBatchResult:
    """Tests for aggregation."""

    def test_counts(self):
        result = BatchResult(
            [
                BatchOperationResult("a", True, "OK"),
                BatchOperationResult("b", False, "boom"),
                BatchOperationResult("c", True, "OK"),
            ]
        )
        assert result.total == 3
        assert result.succeeded == 2
        assert result.failed == 1
        assert not result.all_succeeded
        assert [r.target for r in result.get_failures()] == ["b"]
        assert result.format_summary() == "Total: 3, Succeeded: 2, Failed: 1"

    def test_empty_all_succeeded(self):
        assert BatchResult([]).all_succeeded


class TestExecute:
    """Tests for parallel execution."""

    def test_invalid_throttle(self):
        with pytest.raises(BatchExecutorError):
            BatchExecutor(max_workers=0)

    def test_empty_targets(self):
        assert BatchExecutor().execute([], Mock()).total == 0

    def test_every_target_runs_once(self):
        calls = []
        lock = threading.Lock()

        def operation(target):
            with lock:
                calls.append(target)
            return f"done {target}"

        result = BatchExecutor(max_workers=3).execute(["a", "b", "c", "d"], operation)

        assert sorted(calls) == ["a", "b", "c", "d"]
        assert result.all_succeeded
        assert {r.output for r in result.results} == {"done a", "done b", "done c", "done d"}

    def test_exception_becomes_failure(self):
        def operation(target):
            if target == "bad":
                raise RuntimeError("unreachable host")
            return None

        result = BatchExecutor().execute(["good", "bad"], operation)

        assert result.failed == 1
        failure = result.get_failures()[0]
        assert failure.target == "bad"
        assert failure.message == "unreachable host"

    def test_operation_result_passthrough(self):
        result = BatchExecutor().execute(
            ["x"], lambda t: BatchOperationResult(t, False, "skipped")
        )
        assert result.results[0].message == "skipped"
        assert not result.results[0].success

    def test_progress_callback(self):
        messages = []
        BatchExecutor(max_workers=1).execute(["x"], lambda t: None, progress_callback=messages.append)
        assert messages == ["Running on x...", "✓ x: OK"]


class TestRunCommand:
    """Tests for command template fan-out."""

    def test_empty_template(self):
        with pytest.raises(BatchExecutorError, match="cannot be empty"):
            BatchExecutor().run_command(["a"], "   ")

    def test_unbalanced_quotes(self):
        with pytest.raises(BatchExecutorError, match="Invalid command template"):
            BatchExecutor().run_command(["a"], "echo 'oops")

    @patch("opskit.batch_executor.subprocess.run")
    def test_target_substituted_as_single_argument(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="pong\n", stderr="")

        result = BatchExecutor().run_command(["web-01; rm -rf /"], "ping -c 1 {target}")

        argv = mock_run.call_args[0][0]
        assert argv == ["ping", "-c", "1", "web-01; rm -rf /"]
        assert result.results[0].output == "pong"
        assert result.results[0].message == "Exit code: 0"

    @patch("opskit.batch_executor.subprocess.run")
    def test_nonzero_exit_fails(self, mock_run):
        mock_run.return_value = Mock(returncode=2, stdout="", stderr="no route")
        result = BatchExecutor().run_command(["a"], "probe {target}")
        assert not result.results[0].success
        assert result.results[0].message == "Exit code: 2"

    @patch("opskit.batch_executor.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("probe", 5)
        result = BatchExecutor().run_command(["a"], "probe {target}", timeout=5)
        assert result.results[0].message == "Timed out after 5s"

    @patch("opskit.batch_executor.subprocess.run", side_effect=FileNotFoundError())
    def test_missing_command(self, mock_run):
        result = BatchExecutor().run_command(["a"], "nosuchtool {target}")
        assert result.results[0].message == "Command not found: nosuchtool"
