"""Command line entry point: ``trace-report``.

Exit status is 0 whenever a report was produced, even if the tests it
describes failed.  Input, configuration and output failures exit with the
``exit_code`` of the raised :class:`ReportError`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from src.shared.config import ReportSettings
from src.shared.constants import SERVICE_NAME, VERSION
from src.shared.errors import ReportError
from src.shared.logging import setup_logging
from src.trace_report.config import ReportConfig
from src.trace_report.display import (
    print_coverage_summary,
    print_duplicate_warning,
    print_error,
    print_failure_summary,
    print_history,
    print_outputs,
    print_report_header,
    print_skipped_files,
)
from src.trace_report.history import ExecutionHistory
from src.trace_report.pipeline import generate_report

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="trace-report",
    help="Traceability and coverage reports for generated test runs.",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"trace-report {VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Traceability and coverage reports for generated test runs."""


def _load_config(config_path: Optional[Path], settings: ReportSettings) -> ReportConfig:
    path = config_path or (Path(settings.config_path) if settings.config_path else None)
    return ReportConfig.from_yaml(path) if path else ReportConfig()


@app.command()
def generate(
    artifact_dir: Optional[Path] = typer.Argument(
        None, help="Artifact directory (defaults to $ARTIFACT_DIR)."
    ),
    user_story_id: Optional[str] = typer.Option(None, "--user-story-id", help="User story id override."),
    user_story: Optional[str] = typer.Option(None, "--user-story", help="User story text override."),
    skip_duplicate_check: bool = typer.Option(
        False, "--skip-duplicate-check", help="Do not consult the execution history."
    ),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Report directory."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level."),
) -> None:
    """Generate the traceability CSV, coverage CSV/JSON and HTML report."""
    settings = ReportSettings()
    setup_logging(SERVICE_NAME, log_level or settings.log_level, logger_name="src")
    target = artifact_dir or Path(settings.artifact_dir)
    destination = output_dir or (Path(settings.output_dir) if settings.output_dir else None)

    try:
        config = _load_config(config_path, settings)
        outcome = generate_report(
            target,
            output_dir=destination,
            config=config,
            user_story_id=user_story_id,
            user_story=user_story,
            skip_duplicate_check=skip_duplicate_check,
        )
    except ReportError as exc:
        logger.error("Report generation failed: %s", exc.detail)
        print_error(exc.detail)
        raise typer.Exit(code=exc.exit_code)

    print_report_header(target, outcome.run_id, outcome.user_story.id)
    print_skipped_files(outcome.skipped_files)
    if outcome.advisory is not None:
        print_duplicate_warning(outcome.advisory)
    print_coverage_summary(outcome.snapshot)
    print_failure_summary(outcome.failures)
    print_outputs(outcome.outputs)


@app.command()
def history(
    artifact_dir: Optional[Path] = typer.Argument(
        None, help="Artifact directory (defaults to $ARTIFACT_DIR)."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file."),
) -> None:
    """Show recorded executions for an artifact directory."""
    settings = ReportSettings()
    setup_logging(SERVICE_NAME, settings.log_level, logger_name="src")
    target = artifact_dir or Path(settings.artifact_dir)
    try:
        config = _load_config(config_path, settings)
    except ReportError as exc:
        print_error(exc.detail)
        raise typer.Exit(code=exc.exit_code)
    print_history(ExecutionHistory.for_directory(target, config).load())


if __name__ == "__main__":
    app()
