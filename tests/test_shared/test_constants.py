"""Tests for shared constants values."""
from __future__ import annotations

from src.shared.constants import (
    COVERAGE_HEADER,
    EXTENDED_HEADER,
    FIRST_RUN_LABEL,
    REPORT_HEADER,
    RERUN_LABEL,
    RESULT_PREFIX,
    ROUTE_PREFIX,
    UNMAPPED_FUNCTION_ID,
    VERSION,
)
from src.trace_report import __version__


class TestHeaders:
    def test_report_header_columns(self):
        assert REPORT_HEADER == [
            "実行日時", "ID", "ユーザーストーリー", "機能", "観点",
            "テスト手順", "実行結果", "エラー詳細", "URL", "実行種別",
        ]

    def test_extended_header_appends(self):
        assert len(EXTENDED_HEADER) == 2
        assert not set(EXTENDED_HEADER) & set(REPORT_HEADER)

    def test_coverage_header(self):
        assert len(COVERAGE_HEADER) == 5


class TestMisc:
    def test_version_matches_package(self):
        assert VERSION == __version__

    def test_prefixes_distinct(self):
        assert RESULT_PREFIX != ROUTE_PREFIX

    def test_execution_labels(self):
        assert FIRST_RUN_LABEL != RERUN_LABEL

    def test_unmapped_id_is_single_letter(self):
        assert UNMAPPED_FUNCTION_ID == "X"
