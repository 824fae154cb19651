"""End-to-end report generation for one artifact directory.

Order of work: load -> dedup results -> duplicate-run advisory -> rows ->
coverage -> failures -> write outputs -> record history.  Report rows
come from the newest canonical result only; older results still count
towards coverage and failures.  Input errors surface before anything is
written, every output is rendered before the first write, and the history
update is the final write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from src.shared.logging import new_run_id
from src.shared.utils import parse_timestamp
from src.trace_report.classifier import FunctionIdRegistry
from src.trace_report.config import ReportConfig
from src.trace_report.coverage import aggregate
from src.trace_report.dedup import dedup_results, dedup_rows
from src.trace_report.emitter import (
    find_latest_report,
    load_report_rows,
    render_outputs,
    report_stamp,
    write_outputs,
)
from src.trace_report.failures import collect_failures
from src.trace_report.history import (
    DuplicateRunAdvisory,
    ExecutionHistory,
    RemediationHook,
    advise_duplicate_run,
)
from src.trace_report.loader import load_artifacts
from src.trace_report.mapper import build_mapper
from src.trace_report.models import CoverageSnapshot, FailureDetail, ReportRow
from src.trace_report.rows import (
    UserStory,
    build_category_batch_rows,
    build_result_rows,
    resolve_test_url,
    resolve_user_story,
)

logger = logging.getLogger(__name__)


@dataclass
class ReportOutcome:
    """What one report generation produced."""

    run_id: str
    user_story: UserStory
    rows: list[ReportRow]
    snapshot: CoverageSnapshot
    failures: list[FailureDetail]
    advisory: DuplicateRunAdvisory | None = None
    outputs: dict[str, Path] = field(default_factory=dict)
    skipped_files: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def generate_report(
    artifact_dir: Path | str,
    output_dir: Path | str | None = None,
    config: ReportConfig | None = None,
    user_story_id: str | None = None,
    user_story: str | None = None,
    skip_duplicate_check: bool = False,
    remediation_hook: RemediationHook | None = None,
    now: datetime | None = None,
) -> ReportOutcome:
    """Generate the traceability report and coverage outputs.

    Failed test steps are report content, not errors.

    Args:
        artifact_dir: Directory holding the pipeline artifacts.
        output_dir: Where reports go; defaults to ``artifact_dir``.
        config: Tunables; defaults when omitted.
        user_story_id: Overrides the user story id.
        user_story: Overrides the user story text.
        skip_duplicate_check: Skip the duplicate-run advisory.
        remediation_hook: Called for duplicate runs with failures when
            ``config.auto_remediate`` is enabled.
        now: Clock override for file names and history.

    Returns:
        The generated rows, snapshot, failures and output paths.

    Raises:
        ArtifactNotFoundError: No execution result to report on.
        ArtifactParseError: No execution result parses, or the previous
            report is malformed.
        ReportWriteError: An output could not be written.
    """
    run_id = new_run_id()
    config = config or ReportConfig()
    now = now or datetime.now(timezone.utc)
    artifact_dir = Path(artifact_dir)
    output_dir = Path(output_dir) if output_dir else artifact_dir
    logger.info("Report generation %s started for %s", run_id, artifact_dir)

    bundle = load_artifacts(artifact_dir, config)
    results = sorted(dedup_results(bundle.results), key=lambda r: parse_timestamp(r.timestamp))
    latest = results[-1]

    history = ExecutionHistory.for_directory(artifact_dir, config)
    route_file = bundle.route_file_for(latest)
    advisory = None
    if skip_duplicate_check:
        logger.info("Duplicate-run check skipped")
    else:
        advisory = advise_duplicate_run(history, route_file, config, remediation_hook, now=now)

    latest_route = bundle.route_for(latest)
    story = resolve_user_story(latest_route, user_story_id, user_story)
    mapper = build_mapper(config)

    older = [r.route_id or r.source_file or "unknown" for r in results[:-1]]
    if older:
        logger.warning(
            "Report rows come from the newest result %s; left out %d older results: %s",
            latest.route_id or latest.source_file,
            len(older),
            ", ".join(older),
        )
    rows = build_result_rows(latest, bundle.viewpoints, mapper, story, latest_route)
    if bundle.category_batches:
        registry = FunctionIdRegistry()
        url = resolve_test_url(latest_route, latest)
        for batch in bundle.category_batches:
            rows.extend(
                build_category_batch_rows(batch, story, registry, now.isoformat(), url, config)
            )

    if latest.is_fixed_route:
        previous = find_latest_report(output_dir)
        if previous is not None:
            previous_rows = load_report_rows(previous)
            logger.info("Merging %d rows from %s for fixed-route rerun", len(previous_rows), previous.name)
            rows = previous_rows + rows
    rows = dedup_rows(rows)

    snapshot = aggregate(
        bundle.viewpoints,
        bundle.test_cases,
        bundle.routes,
        results,
        config=config,
        user_story_id=story.id,
    )
    failures = collect_failures(results)

    rendered = render_outputs(
        rows, snapshot, failures, report_stamp(now), extended=config.extended_columns
    )
    outputs = write_outputs(rendered, output_dir)
    history.record(route_file, latest, now=now)

    logger.info(
        "Report generation %s finished: %d rows, %d failures", run_id, len(rows), len(failures)
    )
    return ReportOutcome(
        run_id=run_id,
        user_story=story,
        rows=rows,
        snapshot=snapshot,
        failures=failures,
        advisory=advisory,
        outputs=outputs,
        skipped_files=list(bundle.skipped_files),
    )
