"""Report emitters: traceability CSV, coverage CSV/JSON and HTML.

Rendering functions are pure and return strings.  :func:`write_outputs`
persists a rendered set atomically file by file and removes a partially
written set.  CSV files are UTF-8 with a BOM so spreadsheet
tools detect the encoding of the Japanese headers.
"""

from __future__ import annotations

import csv
import html
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Sequence

from src.shared.constants import (
    COVERAGE_HEADER,
    COVERAGE_PREFIX,
    EXTENDED_HEADER,
    FALLBACK_MARKER,
    REPORT_HEADER,
    REPORT_PREFIX,
)
from src.shared.errors import ArtifactParseError, ReportWriteError
from src.shared.utils import atomic_write_text
from src.trace_report.failures import group_by_category
from src.trace_report.models import CoverageSnapshot, FailureDetail, ReportRow

logger = logging.getLogger(__name__)

CSV_ENCODING = "utf-8-sig"

_ROW_FIELDS: list[str] = [
    "execution_time",
    "traceable_id",
    "user_story",
    "function",
    "viewpoint",
    "test_steps_text",
    "execution_result",
    "error_detail",
    "url",
    "execution_type",
    "route_id",
    "original_route_id",
]

_CATEGORY_TITLES: dict[str, str] = {
    "element_not_visible": "要素非表示",
    "element_disabled": "要素無効",
    "timeout_error": "タイムアウト",
    "element_not_found": "要素未検出",
    "checkbox_misuse": "チェックボックス操作誤り",
    "numeric_input_validation": "数値入力エラー",
    "unknown": "分類不能",
}


def report_stamp(moment: datetime) -> str:
    """File name timestamp, e.g. ``2026-10-18_0930``."""
    return moment.strftime("%Y-%m-%d_%H%M")


def _write(path: Path, content: str, encoding: str = "utf-8") -> Path:
    try:
        atomic_write_text(path, content, encoding=encoding)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        raise ReportWriteError(f"Cannot write {path}: {exc}", path=str(path)) from exc
    logger.info("Wrote %s", path)
    return path


def _to_csv(records: Sequence[Sequence[object]]) -> str:
    """Serialise rows per RFC 4180: minimal quoting, embedded quotes doubled."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerows(records)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Traceability report CSV
# ---------------------------------------------------------------------------


def render_report_csv(rows: Sequence[ReportRow], extended: bool = False) -> str:
    header = REPORT_HEADER + (EXTENDED_HEADER if extended else [])
    return _to_csv([header] + [row.to_values(extended) for row in rows])


def write_report_csv(
    rows: Sequence[ReportRow], output_dir: Path, stamp: str, extended: bool = False
) -> Path:
    path = Path(output_dir) / f"{REPORT_PREFIX}{stamp}.csv"
    return _write(path, render_report_csv(rows, extended), encoding=CSV_ENCODING)


def find_latest_report(output_dir: Path) -> Path | None:
    """Newest traceability CSV in ``output_dir`` (names sort by time)."""
    candidates = sorted(Path(output_dir).glob(f"{REPORT_PREFIX}*.csv"))
    return candidates[-1] if candidates else None


def load_report_rows(path: Path) -> list[ReportRow]:
    """Read rows back from a traceability CSV written by :func:`write_report_csv`.

    Raises:
        ArtifactParseError: If the file is unreadable or has an unknown header.
    """
    try:
        with open(path, "r", encoding=CSV_ENCODING, newline="") as fh:
            records = list(csv.reader(fh))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.error("Failed to read previous report %s: %s", path, exc)
        raise ArtifactParseError(f"Cannot read {path.name}: {exc}", path=str(path)) from exc
    if not records:
        return []
    header = records[0]
    if header[: len(REPORT_HEADER)] != REPORT_HEADER:
        raise ArtifactParseError(f"Unexpected report header in {path.name}", path=str(path))

    rows: list[ReportRow] = []
    for record in records[1:]:
        if not any(record):
            continue
        values = dict(zip(_ROW_FIELDS, record))
        is_fallback = values.get("viewpoint", "").startswith(FALLBACK_MARKER)
        rows.append(ReportRow(**values, is_fallback=is_fallback))
    return rows


# ---------------------------------------------------------------------------
# Coverage CSV / JSON
# ---------------------------------------------------------------------------


def coverage_rows(snapshot: CoverageSnapshot) -> list[list[object]]:
    """Flat ``(category, metric, value, percentage, note)`` rows for a snapshot."""
    src, auto, exe = snapshot.source, snapshot.automation, snapshot.execution
    human, overall = snapshot.human_action, snapshot.overall
    rows: list[list[object]] = [
        ["ソース分析", "テスト観点数", src.total_test_points, "", ""],
        ["ソース分析", "生成テストケース数", src.total_generated_test_cases, src.generation_efficiency, "テストケース生成効率"],
    ]
    for item in src.category_breakdown:
        rows.append(["ソース分析", f"分類: {item.category}", item.test_cases, item.generation_rate, ""])
    rows.extend([
        ["自動化分析", "自動化ルート数", auto.automated_routes, auto.automation_rate, "自動化率"],
        ["自動化分析", "実行可能ルート数", auto.feasible_routes, auto.feasibility_rate, "実行可能率"],
        ["自動化分析", "低実行可能性ルート数", auto.low_feasibility_routes, "", ""],
        ["自動化分析", "未自動化テストケース数", auto.unautomated_test_cases, "", ""],
        ["実行分析", "実行ルート数", exe.executed_routes, "", ""],
        ["実行分析", "成功ルート数", exe.successful_routes, exe.route_success_rate, "ルート成功率"],
        ["実行分析", "実行ステップ数", exe.total_steps, "", ""],
        ["実行分析", "成功ステップ数", exe.successful_steps, exe.step_success_rate, "ステップ成功率"],
    ])
    for item in human.items:
        rows.append(["人間対応", item.kind, item.count, "", item.recommendation])
    rows.extend([
        ["総合", "テストケース数", overall.total_test_cases, "", ""],
        ["総合", "成功テストケース数", overall.successful_test_cases, overall.success_coverage, "成功カバレッジ"],
        ["総合", "カバレッジギャップ", overall.total_test_cases - overall.successful_test_cases, overall.coverage_gap, ""],
        ["総合", "品質スコア", overall.quality_score, "", "0.2×生成 + 0.3×自動化 + 0.3×実行可能 + 0.2×成功"],
    ])
    return rows


def render_coverage_csv(snapshot: CoverageSnapshot) -> str:
    return _to_csv([COVERAGE_HEADER] + coverage_rows(snapshot))



def render_coverage_json(snapshot: CoverageSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)



# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

_CSS = """
body{font-family:sans-serif;margin:2em;color:#222}
.cards{display:flex;gap:1em;flex-wrap:wrap}
.card{border:1px solid #ccc;border-radius:6px;padding:.8em 1.2em;min-width:10em}
.card b{display:block;font-size:1.6em}
table{border-collapse:collapse;margin:1em 0}
th,td{border:1px solid #ddd;padding:.3em .6em;text-align:left}
.success{color:#1a7f37}.failed{color:#cf222e}.not_automated{color:#9a6700}
.suggestion{margin:.2em 0}
"""


def _esc(value: object) -> str:
    return html.escape(str(value))


def _table(header: Sequence[str], rows: Sequence[Sequence[object]]) -> list[str]:
    lines = ["<table>", "<tr>" + "".join(f"<th>{_esc(h)}</th>" for h in header) + "</tr>"]
    for row in rows:
        lines.append("<tr>" + "".join(f"<td>{_esc(cell)}</td>" for cell in row) + "</tr>")
    lines.append("</table>")
    return lines


def render_html(snapshot: CoverageSnapshot, failures: Sequence[FailureDetail]) -> str:
    """Static coverage page with failures grouped by error category."""
    overall = snapshot.overall
    lines: list[str] = []
    lines.append("<!DOCTYPE html><html><head><meta charset='utf-8'>")
    lines.append(f"<title>テストカバレッジレポート - US{_esc(snapshot.user_story_id)}</title>")
    lines.append(f"<style>{_CSS}</style></head><body>")
    lines.append("<h1>テストカバレッジレポート</h1>")
    lines.append(
        f"<p>ユーザーストーリー: {_esc(snapshot.user_story_id)} &nbsp; "
        f"生成日時: {_esc(snapshot.generated_at)}</p>"
    )

    lines.append("<section class='cards'>")
    for title, value in (
        ("成功カバレッジ", f"{overall.success_coverage:.2f}%"),
        ("カバレッジギャップ", f"{overall.coverage_gap:.2f}%"),
        ("品質スコア", f"{overall.quality_score:.2f}"),
        ("ステップ成功率", f"{snapshot.execution.step_success_rate:.2f}%"),
    ):
        lines.append(f"<div class='card'>{_esc(title)}<b>{_esc(value)}</b></div>")
    lines.append("</section>")

    lines.append("<h2>カバレッジ指標</h2>")
    lines.extend(_table(COVERAGE_HEADER, coverage_rows(snapshot)))

    if snapshot.case_coverage:
        lines.append("<h2>テストケース別状況</h2>")
        lines.append("<table><tr><th>ID</th><th>分類</th><th>観点</th><th>状態</th><th>ルート</th></tr>")
        for case in snapshot.case_coverage:
            lines.append(
                f"<tr><td>{_esc(case.case_id)}</td><td>{_esc(case.category)}</td>"
                f"<td>{_esc(case.viewpoint)}</td>"
                f"<td class='{_esc(case.status)}'>{_esc(case.status)}</td>"
                f"<td>{_esc(case.route_id)}</td></tr>"
            )
        lines.append("</table>")

    lines.append("<h2>失敗分析</h2>")
    grouped = group_by_category(failures)
    if not grouped:
        lines.append("<p>失敗したステップはありません。</p>")
    for category, items in grouped.items():
        title = _CATEGORY_TITLES.get(category.value, category.value)
        lines.append(f"<section class='failure-group' id='{_esc(category.value)}'>")
        lines.append(f"<h3>{_esc(title)} ({_esc(category.value)}): {len(items)}件</h3>")
        for failure in items:
            lines.append("<div class='failure'>")
            lines.append(
                f"<p><b>{_esc(failure.label or failure.action)}</b> "
                f"[{_esc(failure.action)}] {_esc(failure.target)} "
                f"<small>route={_esc(failure.route_id)}</small></p>"
            )
            lines.append(f"<pre>{_esc(failure.error)}</pre>")
            lines.append("<ol>")
            for suggestion in failure.fix_suggestions:
                extra = f" → {_esc(suggestion.new_target)}" if suggestion.new_target else ""
                lines.append(
                    f"<li class='suggestion'>{_esc(suggestion.message)}{extra} "
                    f"<small>({_esc(suggestion.type)}, {suggestion.confidence:.0%})</small></li>"
                )
            lines.append("</ol></div>")
        lines.append("</section>")

    lines.append("</body></html>")
    return "\n".join(lines)



# ---------------------------------------------------------------------------
# Output set
# ---------------------------------------------------------------------------


def render_outputs(
    rows: Sequence[ReportRow],
    snapshot: CoverageSnapshot,
    failures: Sequence[FailureDetail],
    stamp: str,
    extended: bool = False,
) -> dict[str, tuple[str, str, str]]:
    """Render every output up front: ``kind -> (file name, content, encoding)``."""
    return {
        "report_csv": (f"{REPORT_PREFIX}{stamp}.csv", render_report_csv(rows, extended), CSV_ENCODING),
        "coverage_csv": (f"{COVERAGE_PREFIX}{stamp}.csv", render_coverage_csv(snapshot), CSV_ENCODING),
        "coverage_json": (f"{COVERAGE_PREFIX}{stamp}.json", render_coverage_json(snapshot), "utf-8"),
        "coverage_html": (f"{COVERAGE_PREFIX}{stamp}.html", render_html(snapshot, failures), "utf-8"),
    }


def write_outputs(rendered: dict[str, tuple[str, str, str]], output_dir: Path) -> dict[str, Path]:
    """Write a rendered output set.  On failure the files already written are removed.

    Raises:
        ReportWriteError: If any file cannot be written.
    """
    written: dict[str, Path] = {}
    try:
        for kind, (name, content, encoding) in rendered.items():
            written[kind] = _write(Path(output_dir) / name, content, encoding=encoding)
    except ReportWriteError:
        for path in written.values():
            path.unlink(missing_ok=True)
        logger.error("Removed %d outputs written before the failure", len(written))
        raise
    return written
