"""Shared constants used across the report generator."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

SERVICE_NAME: str = "trace-report"

# Artifact file name prefixes
RESULT_PREFIX: str = "result_"
ROUTE_PREFIX: str = "route_"
FIXED_ROUTE_PREFIX: str = "fixed_route_"
TEST_POINTS_PREFIX: str = "testPoints_"
TEST_CASES_PREFIX: str = "naturalLanguageTestCases_"
CATEGORY_INDEX_FILE: str = "index.json"

# Output file name prefixes
REPORT_PREFIX: str = "TestResults_"
COVERAGE_PREFIX: str = "TestCoverage_"

# Report CSV header
REPORT_HEADER: list[str] = [
    "実行日時",
    "ID",
    "ユーザーストーリー",
    "機能",
    "観点",
    "テスト手順",
    "実行結果",
    "エラー詳細",
    "URL",
    "実行種別",
]
EXTENDED_HEADER: list[str] = ["ルートID", "元ルートID"]

# Coverage CSV header
COVERAGE_HEADER: list[str] = ["カテゴリ", "メトリクス", "値", "割合(%)", "備考"]

# Execution types
FIRST_RUN_LABEL: str = "初回実行"
RERUN_LABEL: str = "再実行"

# Unmapped steps use this function id
UNMAPPED_FUNCTION_ID: str = "X"

# Prefix of the viewpoint cell of rows built without any viewpoint
FALLBACK_MARKER: str = "[フォールバック]"
