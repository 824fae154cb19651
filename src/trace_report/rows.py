"""Assembly of traceable report rows from mapped execution results."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from src.shared.constants import FALLBACK_MARKER, FIRST_RUN_LABEL, RERUN_LABEL
from src.shared.models.artifacts import ExecutionResult, Route, Step, StepStatus, Viewpoint
from src.trace_report.classifier import (
    UNKNOWN_FUNCTION_NAME,
    UNMAPPED_FUNCTION_NAME,
    FunctionIdRegistry,
    category_key,
    extract_user_story_id,
    mapped_traceable_id,
    single_line,
    unmapped_traceable_id,
)
from src.trace_report.config import ReportConfig
from src.trace_report.loader import CategoryBatch
from src.trace_report.mapper import StepViewpointMapper
from src.trace_report.models import ReportRow

logger = logging.getLogger(__name__)

DEFAULT_USER_STORY = "テストシナリオ実行"
LOAD_ACTIONS = ("load", "goto")


@dataclass
class UserStory:
    id: str
    text: str


def resolve_user_story(
    route: Route | None,
    override_id: str | None = None,
    override_text: str | None = None,
) -> UserStory:
    """Pick the user story for the report.

    An explicit id/text wins.  Otherwise the text comes from the route's
    ``user_story`` or ``goal`` and the id is extracted from that text,
    defaulting to ``1``.
    """
    route_text = (route.user_story or route.goal) if route else None
    text = single_line(override_text or route_text or DEFAULT_USER_STORY)
    story_id = str(override_id) if override_id else extract_user_story_id(text) or "1"
    return UserStory(id=story_id, text=text)


def _first_load_target(steps: Sequence[Step]) -> str:
    for step in steps:
        if step.action.lower() in LOAD_ACTIONS:
            return step.target or step.value or ""
    return ""


def resolve_test_url(route: Route | None, result: ExecutionResult) -> str:
    """Route URL, result URL, then the first load step of the route or result."""
    if route is not None and route.url:
        return route.url
    if result.url:
        return result.url
    if route is not None:
        url = _first_load_target(route.steps)
        if url:
            return url
    return _first_load_target(result.steps)


def format_step(step: Step) -> str:
    """Render one step as readable test-procedure text."""
    action = step.action.lower()
    target = step.target or ""
    if not action:
        part = ""
    elif action in LOAD_ACTIONS:
        part = f"load: {target or step.value or ''}"
    elif action == "click":
        part = f"クリック: {target}"
    elif action == "fill":
        part = f'入力: {target} = "{step.value or ""}"'
    elif action == "select":
        part = f'選択: {target} = "{step.value or ""}"'
    elif action in ("wait", "waitforselector"):
        part = f"waitForSelector: {target or step.value or ''}"
    elif action == "waitforurl":
        part = f"waitForURL: {target or step.value or ''}"
    elif action in ("verify", "assert", "assertvisible"):
        part = f"assertVisible: {target}"
    else:
        part = f"{step.action}: {target}"

    parts = [part] if part else []
    if step.label and step.label not in part:
        parts.insert(0, step.label)
    return " → ".join(parts) or "実行内容不明"


def step_outcome(step: Step) -> str:
    if step.status == StepStatus.SUCCESS:
        return "success"
    if step.status == StepStatus.SKIPPED:
        return "skipped"
    return "failed"


def execution_type(result: ExecutionResult) -> str:
    return RERUN_LABEL if result.is_fixed_route else FIRST_RUN_LABEL


def build_result_rows(
    result: ExecutionResult,
    viewpoints: Sequence[Viewpoint],
    mapper: StepViewpointMapper,
    user_story: UserStory,
    route: Route | None = None,
) -> list[ReportRow]:
    """One row per executed step of ``result``, in execution order.

    Steps the mapper could not place get ``X`` bucket ids.  Without any
    viewpoint every step lands there and the rows are marked as fallback:
    generic function name and a viewpoint cell starting with
    ``FALLBACK_MARKER``.  A result with no executed steps yields a single
    fallback row.
    """
    base = {
        "execution_time": result.timestamp or "",
        "user_story": user_story.text,
        "url": resolve_test_url(route, result),
        "execution_type": execution_type(result),
        "route_id": result.route_id or "",
        "original_route_id": result.original_route_id or "",
    }
    if not result.steps:
        logger.warning("Result %s has no executed steps; emitting a fallback row", result.source_file)
        return [ReportRow(
            traceable_id=unmapped_traceable_id(user_story.id, 1, 1),
            function=UNKNOWN_FUNCTION_NAME,
            viewpoint=f"{FALLBACK_MARKER} 実行ステップなし",
            test_steps_text="テストルート実行",
            execution_result="failed" if result.failures else "no_steps",
            error_detail="実行されたステップが記録されていません",
            is_fallback=True,
            **base,
        )]

    mapping = mapper.map(viewpoints, result.steps)
    if mapping.total != len(result.steps):
        raise RuntimeError(
            f"Step mapping lost steps: {mapping.total} of {len(result.steps)} placed"
        )
    unmapped = {u.step_index: u for u in mapping.unmapped}
    fallback = not viewpoints
    if fallback:
        logger.warning(
            "No viewpoints for %s; %d steps reported as fallback rows",
            result.route_id or result.source_file,
            len(result.steps),
        )

    rows: list[ReportRow] = []
    for index, step in enumerate(result.steps):
        assignment = mapping.mapped.get(index)
        if assignment is not None:
            traceable_id = mapped_traceable_id(
                user_story.id,
                assignment.function_id,
                assignment.viewpoint_index,
                assignment.step_in_viewpoint,
            )
            function, viewpoint = assignment.function_name, assignment.viewpoint_text
        else:
            bucket = unmapped[index]
            traceable_id = unmapped_traceable_id(
                user_story.id, bucket.bucket_index, bucket.bucket_position
            )
            if fallback:
                function = UNKNOWN_FUNCTION_NAME
                viewpoint = f"{FALLBACK_MARKER} 観点未定義（実行ステップ{bucket.bucket_index}）"
            else:
                function = UNMAPPED_FUNCTION_NAME
                viewpoint = f"追加実行ステップ{bucket.bucket_index}"
        rows.append(ReportRow(
            traceable_id=traceable_id,
            function=function,
            viewpoint=viewpoint,
            test_steps_text=format_step(step),
            execution_result=step_outcome(step),
            error_detail=single_line(step.error),
            is_fallback=fallback,
            **base,
        ))
    return rows


def build_category_batch_rows(
    batch: CategoryBatch,
    user_story: UserStory,
    registry: FunctionIdRegistry,
    execution_time: str,
    url: str = "",
    config: ReportConfig | None = None,
) -> list[ReportRow]:
    """Planning rows for a category batch route file.

    Each generated route gets ``{us}.{function}.{n}``; a category that
    produced no route gets ``{us}.{function}.0``.
    """
    config = config or ReportConfig()
    rows: list[ReportRow] = []
    for category in batch.categories:
        letter = registry.id_for(category_key(category.category))
        common = {
            "execution_time": execution_time,
            "user_story": user_story.text,
            "function": category.category,
            "url": url,
            "execution_type": FIRST_RUN_LABEL,
        }
        if not category.routes:
            rows.append(ReportRow(
                traceable_id=f"{user_story.id}.{letter}.0",
                viewpoint=f"{category.category}系テスト（未生成）",
                test_steps_text="テストルート生成不可",
                execution_result="not_generated",
                error_detail=category.error or "実行可能なテストケースが見つかりませんでした",
                **common,
            ))
            continue
        for number, route in enumerate(category.routes, start=1):
            score = route.feasibility_score
            feasible = score is None or score >= config.feasible_threshold
            rows.append(ReportRow(
                traceable_id=f"{user_story.id}.{letter}.{number}",
                viewpoint=f"{category.category}系テスト{number}",
                test_steps_text=" → ".join(format_step(s) for s in route.steps) or "テストルート実行",
                execution_result="generated" if feasible else "low_feasibility",
                error_detail="" if feasible else f"実行可能性スコア: {score:.2f}",
                route_id=route.route_id or "",
                **common,
            ))
    logger.info("Built %d category batch rows from %s", len(rows), batch.source_file)
    return rows
