"""Execution history and the duplicate-run advisory.

History is a small JSON file in the artifact directory, keyed by route
file name.  A run of the same route file inside the debounce window is
flagged as a likely duplicate.  The flag is advisory only: nothing is
blocked and a damaged history file is treated as empty.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from src.shared.errors import ReportWriteError
from src.shared.models.artifacts import ExecutionResult
from src.shared.utils import EPOCH, atomic_write_json, parse_timestamp
from src.trace_report.config import ReportConfig

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    timestamp: str = ""
    route_id: str = ""
    success_count: int = 0
    failed_count: int = 0
    failed_steps: list[str] = field(default_factory=list)


@dataclass
class DuplicateRunAdvisory:
    """Warning that a route file ran recently."""

    route_file: str
    last_run: str
    minutes_since: float
    last_success_count: int = 0
    last_failed_count: int = 0
    failed_steps: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = (
            f"{self.route_file} last ran {self.minutes_since:.0f} minutes ago "
            f"(success={self.last_success_count}, failed={self.last_failed_count})"
        )
        if self.failed_steps:
            text += "; failed steps: " + ", ".join(self.failed_steps)
        return text


RemediationHook = Callable[[DuplicateRunAdvisory], None]


class ExecutionHistory:
    """Persisted per-route-file run history with a TTL duplicate check."""

    def __init__(self, path: Path | str, debounce_minutes: int = 30, limit: int = 10) -> None:
        self.path = Path(path)
        self.debounce_minutes = debounce_minutes
        self.limit = limit
        self._entries: dict[str, list[HistoryEntry]] | None = None

    @classmethod
    def for_directory(cls, artifact_dir: Path | str, config: ReportConfig) -> ExecutionHistory:
        return cls(
            Path(artifact_dir) / config.history_filename,
            debounce_minutes=config.debounce_minutes,
            limit=config.history_limit,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, list[HistoryEntry]]:
        """Read the history file.  Missing or damaged files yield no history."""
        if self._entries is not None:
            return self._entries
        self._entries = {}
        if not self.path.exists():
            return self._entries
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable execution history %s: %s", self.path, exc)
            return self._entries
        if not isinstance(raw, dict):
            logger.warning("Ignoring execution history %s: not a JSON object", self.path)
            return self._entries

        known = set(HistoryEntry.__dataclass_fields__)
        for route_file, items in raw.items():
            if not isinstance(items, list):
                continue
            self._entries[route_file] = [
                HistoryEntry(**{k: v for k, v in item.items() if k in known})
                for item in items
                if isinstance(item, dict)
            ]
        return self._entries

    def save(self) -> None:
        """Write the history atomically."""
        data = {
            route_file: [asdict(entry) for entry in entries]
            for route_file, entries in self.load().items()
        }
        try:
            atomic_write_json(self.path, data)
        except OSError as exc:
            logger.error("Failed to write execution history %s: %s", self.path, exc)
            raise ReportWriteError(f"Cannot write {self.path}: {exc}", path=str(self.path)) from exc
        logger.debug("Execution history saved to %s", self.path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entries(self, route_file: str) -> list[HistoryEntry]:
        return list(self.load().get(route_file, []))

    def check_duplicate(
        self, route_file: str, now: datetime | None = None
    ) -> DuplicateRunAdvisory | None:
        """Return an advisory when ``route_file`` ran within the debounce window."""
        entries = self.entries(route_file)
        if not entries:
            return None
        last = entries[-1]
        last_time = parse_timestamp(last.timestamp)
        if last_time == EPOCH:
            return None
        now = now or datetime.now(timezone.utc)
        minutes = (now - last_time).total_seconds() / 60
        if minutes < 0 or minutes >= self.debounce_minutes:
            return None
        return DuplicateRunAdvisory(
            route_file=route_file,
            last_run=last.timestamp,
            minutes_since=round(minutes, 1),
            last_success_count=last.success_count,
            last_failed_count=last.failed_count,
            failed_steps=list(last.failed_steps),
        )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record(
        self, route_file: str, result: ExecutionResult, now: datetime | None = None
    ) -> HistoryEntry:
        """Append a run for ``route_file``, keep the newest ``limit`` entries, and save."""
        now = now or datetime.now(timezone.utc)
        entry = HistoryEntry(
            timestamp=now.isoformat(),
            route_id=result.route_id or "",
            success_count=result.successes,
            failed_count=result.failures,
            failed_steps=[step.label for step in result.steps if step.is_failed],
        )
        entries = self.load().setdefault(route_file, [])
        entries.append(entry)
        del entries[: max(0, len(entries) - self.limit)]
        self.save()
        logger.info("Recorded execution of %s (%d entries kept)", route_file, len(entries))
        return entry


def advise_duplicate_run(
    history: ExecutionHistory,
    route_file: str,
    config: ReportConfig,
    hook: RemediationHook | None = None,
    now: datetime | None = None,
) -> DuplicateRunAdvisory | None:
    """Check for a recent run of ``route_file`` and warn about it.

    When ``config.auto_remediate`` is set and a hook is given, the hook
    runs for advisories whose last run had failures.
    """
    advisory = history.check_duplicate(route_file, now=now)
    if advisory is None:
        return None
    logger.warning("Possible duplicate run: %s", advisory.message)
    if config.auto_remediate and hook is not None and advisory.last_failed_count > 0:
        logger.info("Triggering remediation hook for %s", route_file)
        hook(advisory)
    return advisory
