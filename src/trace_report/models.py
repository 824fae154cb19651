"""Output records produced by the report engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class FunctionalCategory(str, Enum):
    """Functional grouping of viewpoints.  Each maps to a fixed function id."""

    AUTHENTICATION = "Authentication"
    DISPLAY = "Display"
    INPUT = "Input"
    BOOKING = "Booking"
    SEARCH = "Search"
    PAYMENT = "Payment"
    NAVIGATION = "Navigation"
    ERROR = "Error"
    INTERACTION = "Interaction"
    DATA_VERIFICATION = "DataVerification"
    EDGE_CASE = "EdgeCase"
    COMPATIBILITY = "Compatibility"
    OPERATIONS = "Operations"
    GENERAL = "General"


class ErrorCategory(str, Enum):
    ELEMENT_NOT_VISIBLE = "element_not_visible"
    ELEMENT_DISABLED = "element_disabled"
    TIMEOUT = "timeout_error"
    ELEMENT_NOT_FOUND = "element_not_found"
    CHECKBOX_MISUSE = "checkbox_misuse"
    NUMERIC_INPUT_VALIDATION = "numeric_input_validation"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Report rows
# ---------------------------------------------------------------------------


@dataclass
class ReportRow:
    """One line of the traceability report.

    ``traceable_id`` is unique once rows are deduplicated; ``execution_time``
    is the timestamp of the execution that produced the row, so the newest
    execution wins on collision.
    """

    execution_time: str = ""
    traceable_id: str = ""
    user_story: str = ""
    function: str = ""
    viewpoint: str = ""
    test_steps_text: str = ""
    execution_result: str = ""
    error_detail: str = ""
    url: str = ""
    execution_type: str = ""
    route_id: str = ""
    original_route_id: str = ""
    is_fallback: bool = False

    def to_values(self, extended: bool = False) -> list[str]:
        """Return the CSV cell values in header order."""
        values = [
            self.execution_time,
            self.traceable_id,
            self.user_story,
            self.function,
            self.viewpoint,
            self.test_steps_text,
            self.execution_result,
            self.error_detail,
            self.url,
            self.execution_type,
        ]
        if extended:
            values.extend([self.route_id, self.original_route_id])
        return values


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@dataclass
class Suggestion:
    """A remediation proposal for a failed step."""

    message: str
    confidence: float
    type: str
    new_target: str | None = None
    new_action: str | None = None
    new_value: str | None = None


@dataclass
class FailureDetail:
    """A failed step with its classified cause and ranked suggestions."""

    label: str = ""
    action: str = ""
    target: str = ""
    value: str = ""
    error: str = ""
    error_category: ErrorCategory = ErrorCategory.UNKNOWN
    fix_suggestions: list[Suggestion] = field(default_factory=list)
    route_id: str = ""
    timestamp: str = ""

    @property
    def dedup_key(self) -> tuple[str, str, str, str, str]:
        return (self.label, self.action, self.target, self.value, self.error)


# ---------------------------------------------------------------------------
# Coverage snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryCount:
    category: str
    test_cases: int
    generation_rate: float


@dataclass(frozen=True)
class SourceAnalysis:
    """Viewpoint to test case funnel stage."""

    total_test_points: int
    total_generated_test_cases: int
    generation_efficiency: float
    category_breakdown: tuple[CategoryCount, ...] = ()


@dataclass(frozen=True)
class AutomationAnalysis:
    """Test case to route funnel stage."""

    total_test_cases: int
    automated_routes: int
    feasible_routes: int
    low_feasibility_routes: int
    unautomated_test_cases: int
    automation_rate: float
    feasibility_rate: float


@dataclass(frozen=True)
class ExecutionAnalysis:
    """Route to execution funnel stage."""

    executed_routes: int
    successful_routes: int
    failed_routes: int
    route_success_rate: float
    total_steps: int
    successful_steps: int
    failed_steps: int
    step_success_rate: float


@dataclass(frozen=True)
class HumanActionItem:
    kind: str
    count: int
    recommendation: str


@dataclass(frozen=True)
class HumanActionRequired:
    unautomated_test_cases: int
    low_feasibility_routes: int
    failed_routes: int
    total: int
    items: tuple[HumanActionItem, ...] = ()


@dataclass(frozen=True)
class CaseCoverage:
    """Execution status of one enumerated test case."""

    case_id: str
    category: str
    viewpoint: str
    status: str  # success | failed | not_automated
    route_id: str = ""


@dataclass(frozen=True)
class OverallCoverage:
    total_test_cases: int
    successful_test_cases: int
    failed_test_cases: int
    not_automated_test_cases: int
    success_coverage: float
    coverage_gap: float
    quality_score: float


@dataclass(frozen=True)
class CoverageSnapshot:
    """Immutable result of one coverage aggregation.

    A later run produces a new snapshot; nothing mutates an existing one.
    """

    generated_at: str
    user_story_id: str
    source: SourceAnalysis
    automation: AutomationAnalysis
    execution: ExecutionAnalysis
    human_action: HumanActionRequired
    overall: OverallCoverage
    case_coverage: tuple[CaseCoverage, ...] = ()

    def percentages(self) -> dict[str, float]:
        """Every percentage in the snapshot keyed by metric name."""
        return {
            "generation_efficiency": self.source.generation_efficiency,
            "automation_rate": self.automation.automation_rate,
            "feasibility_rate": self.automation.feasibility_rate,
            "route_success_rate": self.execution.route_success_rate,
            "step_success_rate": self.execution.step_success_rate,
            "success_coverage": self.overall.success_coverage,
            "coverage_gap": self.overall.coverage_gap,
            "quality_score": self.overall.quality_score,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
