"""Rich-based terminal output for report generation.

Uses a module-level :class:`~rich.console.Console` singleton so every
command formats output the same way.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.shared.constants import VERSION
from src.trace_report.history import DuplicateRunAdvisory, HistoryEntry
from src.trace_report.models import CoverageSnapshot, FailureDetail

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()


def _rate_style(value: float) -> str:
    if value >= 80:
        return "green"
    if value >= 50:
        return "yellow"
    return "red"


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_report_header(artifact_dir: Path | str, run_id: str, user_story_id: str) -> None:
    header = Text()
    header.append("Trace Report", style="bold white")
    header.append(f" v{VERSION}\n", style="dim")
    header.append("Artifacts: ", style="bold")
    header.append(f"{artifact_dir}\n", style="green")
    header.append("User story: ", style="bold")
    header.append(f"{user_story_id}\n", style="cyan")
    header.append("Run: ", style="bold")
    header.append(run_id, style="dim")
    _console.print(Panel(header, title="[bold]Report Generation[/bold]", border_style="blue", expand=False))


def print_coverage_summary(snapshot: CoverageSnapshot) -> None:
    """Print the headline coverage numbers as a table."""
    table = Table(title="Coverage", show_lines=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for name, value in snapshot.percentages().items():
        suffix = "" if name == "quality_score" else "%"
        if name == "coverage_gap":
            style = "green" if value <= 50 else "red"
        else:
            style = _rate_style(value)
        table.add_row(name.replace("_", " "), f"[{style}]{value:.2f}{suffix}[/{style}]")
    execution = snapshot.execution
    table.add_row("steps", f"{execution.successful_steps}/{execution.total_steps}")
    table.add_row("routes", f"{execution.successful_routes}/{execution.executed_routes}")
    _console.print(table)


def print_failure_summary(failures: Sequence[FailureDetail]) -> None:
    if not failures:
        _console.print("[green]No failed steps.[/green]")
        return
    table = Table(title=f"Failures ({len(failures)})")
    table.add_column("Category", style="magenta")
    table.add_column("Step")
    table.add_column("Top suggestion")
    for failure in failures:
        top = failure.fix_suggestions[0] if failure.fix_suggestions else None
        table.add_row(
            failure.error_category.value,
            failure.label or failure.action,
            f"{top.type} ({top.confidence:.0%})" if top else "-",
        )
    _console.print(table)


def print_duplicate_warning(advisory: DuplicateRunAdvisory) -> None:
    _console.print(
        Panel(
            Text(advisory.message),
            title="[bold yellow]Possible duplicate run[/bold yellow]",
            border_style="yellow",
            expand=False,
        )
    )


def print_outputs(outputs: dict[str, Path]) -> None:
    for kind, path in outputs.items():
        _console.print(f"[bold]{kind}[/bold]: {path}")


def print_history(history: dict[str, list[HistoryEntry]]) -> None:
    if not history:
        _console.print("[dim]No recorded executions.[/dim]")
        return
    table = Table(title="Execution history")
    table.add_column("Route file", style="cyan")
    table.add_column("Timestamp")
    table.add_column("Route")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    for route_file, entries in history.items():
        for entry in entries:
            table.add_row(
                route_file,
                entry.timestamp,
                entry.route_id,
                str(entry.success_count),
                str(entry.failed_count),
            )
    _console.print(table)


def print_error(message: str) -> None:
    _console.print(Panel(Text(message), title="[bold red]Error[/bold red]", border_style="red", expand=False))


def print_skipped_files(skipped: Sequence[str]) -> None:
    if not skipped:
        return
    _console.print(f"[yellow]Skipped {len(skipped)} unreadable artifact(s):[/yellow] " + ", ".join(skipped))
