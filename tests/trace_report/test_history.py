"""Tests for the execution history and duplicate-run advisory."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

from src.trace_report.config import ReportConfig
from src.trace_report.history import (
    ExecutionHistory,
    advise_duplicate_run,
)
from tests.trace_report.conftest import make_result

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class TestExecutionHistory:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json")
        assert history.load() == {}
        assert history.check_duplicate("route_a.json", now=NOW) is None

    def test_record_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        history = ExecutionHistory(path)
        history.record("route_a.json", make_result("r1", "2026-10-01T11:00:00Z", failed=(2,)), now=NOW)

        reloaded = ExecutionHistory(path).entries("route_a.json")
        assert len(reloaded) == 1
        assert reloaded[0].route_id == "r1"
        assert reloaded[0].success_count == 9
        assert reloaded[0].failed_count == 1
        assert reloaded[0].failed_steps == ["ステップ3"]

    def test_atomic_write_leaves_no_tmp(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        ExecutionHistory(path).record("route_a.json", make_result("r1", "t"), now=NOW)
        assert path.exists()
        assert not list(tmp_path.glob("*.tmp"))
        assert "route_a.json" in json.loads(path.read_text(encoding="utf-8"))

    def test_limit_keeps_newest(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json", limit=3)
        for minute in range(5):
            history.record("route_a.json", make_result(f"r{minute}", "t"), now=NOW + timedelta(minutes=minute))
        assert [e.route_id for e in history.entries("route_a.json")] == ["r2", "r3", "r4"]

    def test_duplicate_within_window(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json", debounce_minutes=30)
        history.record("route_a.json", make_result("r1", "t", failed=(0,)), now=NOW)
        advisory = history.check_duplicate("route_a.json", now=NOW + timedelta(minutes=10))
        assert advisory is not None
        assert advisory.minutes_since == 10.0
        assert advisory.last_failed_count == 1
        assert "route_a.json" in advisory.message

    def test_outside_window_is_not_duplicate(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json", debounce_minutes=30)
        history.record("route_a.json", make_result("r1", "t"), now=NOW)
        assert history.check_duplicate("route_a.json", now=NOW + timedelta(minutes=30)) is None

    def test_keyed_by_route_file(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json")
        history.record("route_a.json", make_result("r1", "t"), now=NOW)
        assert history.check_duplicate("route_b.json", now=NOW) is None

    def test_corrupt_file_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        path.write_text("{not json", encoding="utf-8")
        history = ExecutionHistory(path)
        assert history.load() == {}
        history.record("route_a.json", make_result("r1", "t"), now=NOW)
        assert len(ExecutionHistory(path).entries("route_a.json")) == 1

    def test_for_directory_uses_config(self, tmp_path: Path) -> None:
        config = ReportConfig(history_filename="hist.json", debounce_minutes=5, history_limit=2)
        history = ExecutionHistory.for_directory(tmp_path, config)
        assert history.path == tmp_path / "hist.json"
        assert history.debounce_minutes == 5
        assert history.limit == 2


class TestAdvise:
    def _history(self, tmp_path: Path, failed: tuple[int, ...] = (0,)) -> ExecutionHistory:
        history = ExecutionHistory(tmp_path / "h.json")
        history.record("route_a.json", make_result("r1", "t", failed=failed), now=NOW)
        return history

    def test_warns_without_hook(self, tmp_path: Path, caplog) -> None:
        advisory = advise_duplicate_run(
            self._history(tmp_path), "route_a.json", ReportConfig(), now=NOW + timedelta(minutes=1)
        )
        assert advisory is not None
        assert "Possible duplicate run" in caplog.text

    def test_hook_requires_opt_in(self, tmp_path: Path) -> None:
        hook = MagicMock()
        advise_duplicate_run(
            self._history(tmp_path), "route_a.json", ReportConfig(), hook=hook,
            now=NOW + timedelta(minutes=1),
        )
        hook.assert_not_called()

    def test_hook_called_when_enabled(self, tmp_path: Path) -> None:
        hook = MagicMock()
        advisory = advise_duplicate_run(
            self._history(tmp_path), "route_a.json", ReportConfig(auto_remediate=True), hook=hook,
            now=NOW + timedelta(minutes=1),
        )
        hook.assert_called_once_with(advisory)

    def test_hook_skipped_when_last_run_passed(self, tmp_path: Path) -> None:
        hook = MagicMock()
        advise_duplicate_run(
            self._history(tmp_path, failed=()), "route_a.json", ReportConfig(auto_remediate=True),
            hook=hook, now=NOW + timedelta(minutes=1),
        )
        hook.assert_not_called()

    def test_no_advisory_without_history(self, tmp_path: Path) -> None:
        history = ExecutionHistory(tmp_path / "h.json")
        assert advise_duplicate_run(history, "route_a.json", ReportConfig(), now=NOW) is None
