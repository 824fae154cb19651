"""Coverage aggregation across the test-generation funnel.

Each funnel stage has its own denominator and they are never mixed:

1. **Source** -- viewpoints -> generated test cases
   (``generation_efficiency``).
2. **Automation** -- test cases -> routes with steps (``automation_rate``),
   routes -> feasible routes (``feasibility_rate``).
3. **Execution** -- executed routes -> successful routes
   (``route_success_rate``), executed steps -> successful steps
   (``step_success_rate``).
4. **Overall** -- enumerated test cases -> successfully executed test cases
   (``success_coverage``) and its complement ``coverage_gap``.

The quality score weights the stages as::

    0.2 * generation + 0.3 * automation + 0.3 * feasibility + 0.2 * execution

Every percentage is zero when its denominator is zero and clamped to
``[0, 100]``.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Sequence

from src.shared.models.artifacts import ExecutionResult, Route, TestCase, Viewpoint
from src.shared.utils import now_iso
from src.trace_report.config import ReportConfig
from src.trace_report.models import (
    AutomationAnalysis,
    CaseCoverage,
    CategoryCount,
    CoverageSnapshot,
    ExecutionAnalysis,
    HumanActionItem,
    HumanActionRequired,
    OverallCoverage,
    SourceAnalysis,
)

logger = logging.getLogger(__name__)

QUALITY_WEIGHTS: dict[str, float] = {
    "generation": 0.2,
    "automation": 0.3,
    "feasibility": 0.3,
    "execution": 0.2,
}

# Leading characters of a viewpoint compared when linking test cases to routes.
VIEWPOINT_MATCH_PREFIX = 30


# ---------------------------------------------------------------------------
# Arithmetic helpers
# ---------------------------------------------------------------------------


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def percentage(numerator: float, denominator: float) -> float:
    """``numerator / denominator * 100`` rounded to 2 places, 0.0 on a zero denominator."""
    if denominator <= 0:
        return 0.0
    return round(clamp(numerator / denominator * 100), 2)


def quality_score(
    generation_efficiency: float,
    automation_rate: float,
    feasibility_rate: float,
    execution_success_rate: float,
) -> float:
    """Weighted composite of the four funnel rates, rounded to 2 places."""
    score = (
        generation_efficiency * QUALITY_WEIGHTS["generation"]
        + automation_rate * QUALITY_WEIGHTS["automation"]
        + feasibility_rate * QUALITY_WEIGHTS["feasibility"]
        + execution_success_rate * QUALITY_WEIGHTS["execution"]
    )
    return round(clamp(score), 2)


def route_succeeded(result: ExecutionResult, threshold: float = 0.9) -> bool:
    """A route succeeds with no failed steps or a success rate at the threshold.

    A result that executed nothing is not a success.
    """
    if result.successes + result.failures == 0:
        return False
    return result.failures == 0 or result.success_rate >= threshold


# ---------------------------------------------------------------------------
# Stage analyses
# ---------------------------------------------------------------------------


def analyze_source(viewpoints: Sequence[Viewpoint], test_cases: Sequence[TestCase]) -> SourceAnalysis:
    total_points = len(viewpoints)
    counts = Counter(tc.category for tc in test_cases)
    breakdown = tuple(
        CategoryCount(
            category=category,
            test_cases=count,
            generation_rate=percentage(count, total_points),
        )
        for category, count in counts.items()
    )
    return SourceAnalysis(
        total_test_points=total_points,
        total_generated_test_cases=len(test_cases),
        generation_efficiency=percentage(len(test_cases), total_points),
        category_breakdown=breakdown,
    )


def analyze_automation(
    test_cases: Sequence[TestCase], routes: Sequence[Route], config: ReportConfig
) -> AutomationAnalysis:
    """Count distinct routes with steps and bucket them by feasibility score.

    A route without a feasibility score is taken as fully feasible.
    """
    seen: set[str] = set()
    feasible = 0
    low = 0
    for route in routes:
        if not route.steps:
            continue
        route_key = route.route_id or "unknown"
        if route_key in seen:
            continue
        seen.add(route_key)
        score = 1.0 if route.feasibility_score is None else route.feasibility_score
        if score >= config.feasible_threshold:
            feasible += 1
        elif score >= config.low_feasibility_threshold:
            low += 1

    automated = len(seen)
    total_cases = len(test_cases)
    return AutomationAnalysis(
        total_test_cases=total_cases,
        automated_routes=automated,
        feasible_routes=feasible,
        low_feasibility_routes=low,
        unautomated_test_cases=max(0, total_cases - automated),
        automation_rate=percentage(automated, total_cases),
        feasibility_rate=percentage(feasible, automated),
    )


def analyze_execution(results: Sequence[ExecutionResult], config: ReportConfig) -> ExecutionAnalysis:
    """Summarise canonical (already deduplicated) execution results."""
    successful_routes = sum(
        1 for r in results if route_succeeded(r, config.route_success_threshold)
    )
    total_steps = sum(r.executed_steps for r in results)
    successful_steps = sum(r.successes for r in results)
    failed_steps = sum(r.failures for r in results)
    return ExecutionAnalysis(
        executed_routes=len(results),
        successful_routes=successful_routes,
        failed_routes=len(results) - successful_routes,
        route_success_rate=percentage(successful_routes, len(results)),
        total_steps=total_steps,
        successful_steps=successful_steps,
        failed_steps=failed_steps,
        step_success_rate=percentage(successful_steps, total_steps),
    )


def _route_matches_case(route: Route, test_case: TestCase) -> bool:
    if test_case.id and route.generated_from_natural_case == test_case.id:
        return True
    if test_case.id and route.route_id and test_case.id in route.route_id:
        return True
    route_view = route.original_viewpoint or ""
    case_view = test_case.original_viewpoint or ""
    if not route_view or not case_view:
        return False
    return route_view == case_view or case_view[:VIEWPOINT_MATCH_PREFIX] in route_view


def analyze_cases(
    test_cases: Sequence[TestCase],
    routes: Sequence[Route],
    results: Sequence[ExecutionResult],
    config: ReportConfig,
) -> tuple[CaseCoverage, ...]:
    """Resolve each test case to success, failed, or not_automated."""
    results_by_route = {r.route_id: r for r in results if r.route_id}
    statuses: list[CaseCoverage] = []
    for index, test_case in enumerate(test_cases):
        route = next((r for r in routes if r.steps and _route_matches_case(r, test_case)), None)
        if route is None:
            status = "not_automated"
        else:
            result = results_by_route.get(route.route_id)
            if result is not None and route_succeeded(result, config.route_success_threshold):
                status = "success"
            else:
                status = "failed"
        statuses.append(
            CaseCoverage(
                case_id=test_case.id or f"TC{index + 1}",
                category=test_case.category,
                viewpoint=test_case.original_viewpoint,
                status=status,
                route_id=(route.route_id or "") if route else "",
            )
        )
    return tuple(statuses)


def analyze_human_action(
    automation: AutomationAnalysis, execution: ExecutionAnalysis
) -> HumanActionRequired:
    items: list[HumanActionItem] = []
    if automation.unautomated_test_cases:
        items.append(HumanActionItem(
            kind="unautomated",
            count=automation.unautomated_test_cases,
            recommendation=f"{automation.unautomated_test_cases}件の未自動化テストケース（ルート未生成）",
        ))
    if automation.low_feasibility_routes:
        items.append(HumanActionItem(
            kind="low_feasibility",
            count=automation.low_feasibility_routes,
            recommendation=f"{automation.low_feasibility_routes}件の低実行可能性ルート（手動確認推奨）",
        ))
    if execution.failed_routes:
        items.append(HumanActionItem(
            kind="failed_route",
            count=execution.failed_routes,
            recommendation=f"{execution.failed_routes}件の自動実行失敗ルート（手動再確認推奨）",
        ))
    return HumanActionRequired(
        unautomated_test_cases=automation.unautomated_test_cases,
        low_feasibility_routes=automation.low_feasibility_routes,
        failed_routes=execution.failed_routes,
        total=sum(item.count for item in items),
        items=tuple(items),
    )


# ---------------------------------------------------------------------------
# Aggregation entry point
# ---------------------------------------------------------------------------


def aggregate(
    viewpoints: Sequence[Viewpoint],
    test_cases: Sequence[TestCase],
    routes: Sequence[Route],
    results: Sequence[ExecutionResult],
    config: ReportConfig | None = None,
    user_story_id: str = "1",
) -> CoverageSnapshot:
    """Build an immutable coverage snapshot.

    Args:
        viewpoints: Source viewpoints.
        test_cases: Generated test cases.
        routes: Generated routes (duplicates by route id count once).
        results: Canonical execution results, one per route id.
        config: Thresholds; defaults when omitted.
        user_story_id: Recorded on the snapshot.

    Returns:
        The snapshot.  ``success_coverage + coverage_gap == 100``.
    """
    config = config or ReportConfig()
    source = analyze_source(viewpoints, test_cases)
    automation = analyze_automation(test_cases, routes, config)
    execution = analyze_execution(results, config)
    cases = analyze_cases(test_cases, routes, results, config)
    human_action = analyze_human_action(automation, execution)

    status_counts = Counter(case.status for case in cases)
    success_coverage = percentage(status_counts["success"], len(cases))
    overall = OverallCoverage(
        total_test_cases=len(cases),
        successful_test_cases=status_counts["success"],
        failed_test_cases=status_counts["failed"],
        not_automated_test_cases=status_counts["not_automated"],
        success_coverage=success_coverage,
        coverage_gap=round(100.0 - success_coverage, 2),
        quality_score=quality_score(
            source.generation_efficiency,
            automation.automation_rate,
            automation.feasibility_rate,
            execution.route_success_rate,
        ),
    )

    snapshot = CoverageSnapshot(
        generated_at=now_iso(),
        user_story_id=str(user_story_id),
        source=source,
        automation=automation,
        execution=execution,
        human_action=human_action,
        overall=overall,
        case_coverage=cases,
    )
    logger.info(
        "Coverage[%s]: success=%.2f%% gap=%.2f%% steps=%.2f%% routes=%.2f%% quality=%.2f",
        snapshot.user_story_id,
        overall.success_coverage,
        overall.coverage_gap,
        execution.step_success_rate,
        execution.route_success_rate,
        overall.quality_score,
    )
    return snapshot
