"""Tests for keep-latest-by-key deduplication."""

from __future__ import annotations

import logging

import pytest

from src.trace_report.dedup import (
    dedup_failures,
    dedup_results,
    dedup_rows,
    keep_latest,
)
from src.trace_report.models import FailureDetail, ReportRow
from tests.trace_report.conftest import make_result


class TestKeepLatest:
    def test_later_timestamp_wins(self) -> None:
        records = [
            {"id": "a", "ts": "2026-10-01T10:00:00Z", "v": 1},
            {"id": "a", "ts": "2026-10-01T11:00:00Z", "v": 2},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert kept == [records[1]]

    def test_order_of_input_does_not_matter_for_winner(self) -> None:
        records = [
            {"id": "a", "ts": "2026-10-01T11:00:00Z", "v": 2},
            {"id": "a", "ts": "2026-10-01T10:00:00Z", "v": 1},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert [r["v"] for r in kept] == [2]

    def test_tie_resolves_to_last_seen(self) -> None:
        records = [
            {"id": "a", "ts": "2026-10-01T10:00:00Z", "v": 1},
            {"id": "a", "ts": "2026-10-01T10:00:00Z", "v": 2},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert [r["v"] for r in kept] == [2]

    def test_missing_timestamp_is_oldest(self) -> None:
        records = [
            {"id": "a", "ts": "1999-01-01T00:00:00Z", "v": 1},
            {"id": "a", "ts": None, "v": 2},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert [r["v"] for r in kept] == [1]

    def test_missing_keys_collapse_to_unknown(self) -> None:
        records = [
            {"id": None, "ts": "2026-10-01T10:00:00Z", "v": 1},
            {"id": "", "ts": "2026-10-01T12:00:00Z", "v": 2},
            {"id": None, "ts": "2026-10-01T11:00:00Z", "v": 3},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert [r["v"] for r in kept] == [2]

    def test_first_seen_key_order_is_kept(self) -> None:
        records = [
            {"id": "b", "ts": 1, "v": 1},
            {"id": "a", "ts": 1, "v": 2},
            {"id": "b", "ts": 2, "v": 3},
        ]
        kept = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert [r["id"] for r in kept] == ["b", "a"]

    def test_idempotent(self) -> None:
        records = [
            {"id": k, "ts": f"2026-10-01T1{i}:00:00Z", "v": i}
            for i, k in enumerate(["a", "b", "a", "c", "b"])
        ]
        once = keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        twice = keep_latest(once, lambda r: r["id"], lambda r: r["ts"])
        assert twice == once

    def test_input_not_mutated(self) -> None:
        records = [{"id": "a", "ts": 1}, {"id": "a", "ts": 2}]
        snapshot = list(records)
        keep_latest(records, lambda r: r["id"], lambda r: r["ts"])
        assert records == snapshot

    def test_logs_removed_count(self, caplog: pytest.LogCaptureFixture) -> None:
        records = [{"id": "a", "ts": 1}, {"id": "a", "ts": 2}, {"id": "b", "ts": 1}]
        with caplog.at_level(logging.INFO, logger="src.trace_report.dedup"):
            keep_latest(records, lambda r: r["id"], lambda r: r["ts"], kind="widgets")
        assert "widgets: 3 -> 2 (1 removed)" in caplog.text


class TestParameterizations:
    def test_results_by_route_id(self) -> None:
        t1 = make_result("route-1", "2026-10-01T10:00:00Z")
        t2 = make_result("route-1", "2026-10-01T11:00:00Z", failed=(3,))
        other = make_result("route-2", "2026-10-01T09:00:00Z")
        kept = dedup_results([t2, other, t1])
        assert kept == [t2, other]

    def test_results_with_epoch_timestamps(self) -> None:
        newer = make_result("route-1", 1_759_309_800_000, failed=(3,))
        older = make_result("route-1", 1_759_309_200)
        assert dedup_results([newer, older]) == [newer]

    def test_rows_by_traceable_id(self) -> None:
        old = ReportRow(traceable_id="1.C.1-1", execution_time="2026-10-01T10:00:00Z", execution_result="failed")
        new = ReportRow(traceable_id="1.C.1-1", execution_time="2026-10-01T12:00:00Z", execution_result="success")
        assert dedup_rows([old, new]) == [new]

    def test_failures_by_composite_key(self) -> None:
        base = dict(label="送信", action="click", target="#send", value="", error="boom")
        first = FailureDetail(**base, timestamp="2026-10-01T10:00:00Z", route_id="r1")
        second = FailureDetail(**base, timestamp="2026-10-01T11:00:00Z", route_id="r2")
        different = FailureDetail(**{**base, "target": "#other"}, timestamp="2026-10-01T09:00:00Z")
        kept = dedup_failures([first, second, different])
        assert kept == [second, different]
