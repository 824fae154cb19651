"""Re-association of executed steps with the viewpoints that motivated them.

Execution results are flat step lists with no link back to a viewpoint,
so mapping is heuristic.  ``StepViewpointMapper`` is the seam: callers
depend on the protocol and a better matcher can replace the positional
default without touching them.

Every executed step ends up either mapped or in an unmapped bucket, never
both and never neither.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable

from src.shared.models.artifacts import Step, Viewpoint
from src.trace_report.classifier import (
    FunctionIdRegistry,
    classify_viewpoint,
    function_name,
)
from src.trace_report.config import ReportConfig
from src.trace_report.models import FunctionalCategory

logger = logging.getLogger(__name__)


@dataclass
class StepAssignment:
    """Where one executed step landed."""

    step_index: int
    function_key: FunctionalCategory | str
    function_id: str
    function_name: str
    viewpoint_index: int  # position within its function group
    step_in_viewpoint: int
    viewpoint_text: str


@dataclass
class UnmappedStep:
    step_index: int
    bucket_index: int  # 1-based
    bucket_position: int  # 1-based


@dataclass
class MappingResult:
    mapped: dict[int, StepAssignment] = field(default_factory=dict)
    unmapped: list[UnmappedStep] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.mapped) + len(self.unmapped)


@dataclass
class ViewpointGroup:
    """Viewpoints sharing a functional category, in original order."""

    key: FunctionalCategory | str
    function_id: str
    function_name: str
    viewpoints: list[Viewpoint] = field(default_factory=list)


@runtime_checkable
class StepViewpointMapper(Protocol):
    """Protocol for step-to-viewpoint mapping strategies."""

    def map(self, viewpoints: Sequence[Viewpoint], steps: Sequence[Step]) -> MappingResult:
        """Map executed steps onto viewpoints.

        Args:
            viewpoints: Viewpoints in source order.
            steps: Executed steps in execution order.

        Returns:
            Mapped steps keyed by step index plus the unmapped remainder.
        """
        ...


def group_viewpoints(
    viewpoints: Sequence[Viewpoint], registry: FunctionIdRegistry | None = None
) -> list[ViewpointGroup]:
    """Group viewpoints by functional category in first-seen category order."""
    registry = registry or FunctionIdRegistry()
    groups: dict[FunctionalCategory | str, ViewpointGroup] = {}
    for viewpoint in viewpoints:
        key = classify_viewpoint(viewpoint.text, viewpoint.category)
        group = groups.get(key)
        if group is None:
            group = ViewpointGroup(
                key=key,
                function_id=registry.id_for(key),
                function_name=function_name(key),
            )
            groups[key] = group
        group.viewpoints.append(viewpoint)
    return list(groups.values())


def bucket_unmapped(step_indices: Sequence[int], bucket_size: int) -> list[UnmappedStep]:
    """Split consecutive unmapped steps into fixed-size windows."""
    return [
        UnmappedStep(
            step_index=step_index,
            bucket_index=position // bucket_size + 1,
            bucket_position=position % bucket_size + 1,
        )
        for position, step_index in enumerate(step_indices)
    ]


class PositionalMapper:
    """Even-distribution positional mapping.

    Each viewpoint, walked group by group, takes the next
    ``ceil(steps / viewpoints)`` steps from the front of the queue.
    Whatever is left goes to unmapped buckets.
    """

    def __init__(self, bucket_size: int = 5) -> None:
        self.bucket_size = bucket_size

    def map(self, viewpoints: Sequence[Viewpoint], steps: Sequence[Step]) -> MappingResult:
        groups = group_viewpoints(viewpoints)
        slots = [
            (group, index, viewpoint)
            for group in groups
            for index, viewpoint in enumerate(group.viewpoints)
        ]
        if not slots or not steps:
            distribution: list[list[int]] = [[] for _ in slots]
            leftover = list(range(len(steps)))
        else:
            distribution, leftover = self._distribute(slots, steps)

        result = MappingResult()
        for (group, index, viewpoint), step_indices in zip(slots, distribution):
            for position, step_index in enumerate(step_indices):
                result.mapped[step_index] = StepAssignment(
                    step_index=step_index,
                    function_key=group.key,
                    function_id=group.function_id,
                    function_name=group.function_name,
                    viewpoint_index=index,
                    step_in_viewpoint=position,
                    viewpoint_text=viewpoint.text,
                )
        result.unmapped = bucket_unmapped(leftover, self.bucket_size)

        logger.info(
            "Mapped %d steps onto %d viewpoints in %d groups (%d unmapped)",
            len(result.mapped),
            len(slots),
            len(groups),
            len(result.unmapped),
        )
        return result

    def _distribute(
        self,
        slots: list[tuple[ViewpointGroup, int, Viewpoint]],
        steps: Sequence[Step],
    ) -> tuple[list[list[int]], list[int]]:
        """Assign step indices to slots.  Returns per-slot lists and leftovers."""
        per_viewpoint = math.ceil(len(steps) / len(slots))
        distribution: list[list[int]] = []
        cursor = 0
        for _ in slots:
            taken = list(range(cursor, min(cursor + per_viewpoint, len(steps))))
            distribution.append(taken)
            cursor += len(taken)
        return distribution, list(range(cursor, len(steps)))


# Canonical keyword -> surface forms found in viewpoint or step text.
DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "input": ("入力", "記入", "input", "fill", "enter", "type"),
    "select": ("選択", "select", "choose"),
    "confirm": ("確認", "verify", "assert", "check"),
    "display": ("表示", "display", "visible", "show"),
    "click": ("クリック", "押下", "click", "press", "tap"),
    "navigate": ("遷移", "navigat", "load", "goto", "visit"),
    "login": ("ログイン", "login", "sign in"),
    "search": ("検索", "search"),
    "reserve": ("予約", "reserv", "book"),
    "button": ("ボタン", "button"),
    "form": ("フォーム", "form"),
    "menu": ("メニュー", "menu"),
    "page": ("ページ", "画面", "page", "screen"),
    "field": ("フィールド", "field"),
    "link": ("リンク", "link"),
}


def extract_keywords(text: str) -> set[str]:
    lowered = (text or "").lower()
    return {
        canonical
        for canonical, forms in DOMAIN_KEYWORDS.items()
        if any(form in lowered for form in forms)
    }


def keyword_overlap(step: Step, viewpoint: Viewpoint) -> int:
    """Number of domain keywords shared by a step and a viewpoint."""
    step_text = " ".join(part for part in (step.label, step.action, step.target) if part)
    return len(extract_keywords(step_text) & extract_keywords(viewpoint.text))


class KeywordOverlapMapper(PositionalMapper):
    """Positional mapping with keyword tie-breaking at viewpoint boundaries.

    Only the step on either side of a boundary between two neighbouring
    viewpoints can move, and only when it shares strictly more keywords
    with the neighbour.  A viewpoint never loses its last step.
    """

    def _distribute(
        self,
        slots: list[tuple[ViewpointGroup, int, Viewpoint]],
        steps: Sequence[Step],
    ) -> tuple[list[list[int]], list[int]]:
        distribution, leftover = super()._distribute(slots, steps)
        moved = 0
        for i in range(len(slots) - 1):
            current, following = distribution[i], distribution[i + 1]
            if not current or not following:
                continue
            here, there = slots[i][2], slots[i + 1][2]
            last = current[-1]
            if len(current) > 1 and keyword_overlap(steps[last], there) > keyword_overlap(
                steps[last], here
            ):
                following.insert(0, current.pop())
                moved += 1
                continue
            first = following[0]
            if len(following) > 1 and keyword_overlap(steps[first], here) > keyword_overlap(
                steps[first], there
            ):
                current.append(following.pop(0))
                moved += 1
        if moved:
            logger.debug("Keyword overlap moved %d boundary steps", moved)
        return distribution, leftover


def build_mapper(config: ReportConfig) -> StepViewpointMapper:
    """Return the mapping strategy named by ``config.mapper``."""
    if config.mapper == "keyword":
        return KeywordOverlapMapper(bucket_size=config.unmapped_bucket_size)
    return PositionalMapper(bucket_size=config.unmapped_bucket_size)
