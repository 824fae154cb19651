"""Keep-latest-by-key deduplication.

One reducer serves every record type: execution results keyed by route
id, report rows keyed by traceable id, and failures keyed by their
``(label, action, target, value, error)`` tuple.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Iterable, TypeVar

from src.shared.models.artifacts import ExecutionResult
from src.shared.utils import parse_timestamp
from src.trace_report.models import FailureDetail, ReportRow

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN_KEY = "unknown"


def keep_latest(
    records: Iterable[T],
    key: Callable[[T], Hashable | None],
    timestamp: Callable[[T], Any],
    kind: str = "records",
) -> list[T]:
    """Return one record per distinct key: the one with the latest timestamp.

    A missing timestamp counts as the epoch and a missing key as
    ``"unknown"``.  On equal timestamps the record seen last wins.  Output
    keeps the order in which each key was first seen.

    Args:
        records: Records to reduce.  Not mutated.
        key: Extracts the grouping key.
        timestamp: Extracts the raw timestamp (ISO string, epoch or datetime).
        kind: Label used in the diagnostic log line.

    Returns:
        The deduplicated records.
    """
    latest: dict[Hashable, tuple[Any, T]] = {}
    total = 0
    for record in records:
        total += 1
        record_key = key(record)
        if record_key is None or record_key == "":
            record_key = UNKNOWN_KEY
        ts = parse_timestamp(timestamp(record))
        current = latest.get(record_key)
        if current is None or ts >= current[0]:
            latest[record_key] = (ts, record)

    kept = [record for _, record in latest.values()]
    removed = total - len(kept)
    logger.info("Deduplicated %s: %d -> %d (%d removed)", kind, total, len(kept), removed)
    return kept


def dedup_results(results: Iterable[ExecutionResult]) -> list[ExecutionResult]:
    return keep_latest(results, lambda r: r.route_id, lambda r: r.timestamp, "execution results")


def dedup_rows(rows: Iterable[ReportRow]) -> list[ReportRow]:
    return keep_latest(rows, lambda r: r.traceable_id, lambda r: r.execution_time, "report rows")


def dedup_failures(failures: Iterable[FailureDetail]) -> list[FailureDetail]:
    return keep_latest(failures, lambda f: f.dedup_key, lambda f: f.timestamp, "failures")
