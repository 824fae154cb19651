"""Failure classification and remediation suggestions.

``ERROR_RULES`` is evaluated top to bottom and the first match wins.  As
with functional classification, the order is a contract.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Callable, Iterable, Sequence

from src.shared.models.artifacts import ExecutionResult, Step
from src.trace_report.dedup import dedup_failures
from src.trace_report.models import ErrorCategory, FailureDetail, Suggestion

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]

_NAME_SELECTOR_RE = re.compile(r"""\[name=["']?([^"'\]]+)["']?\]""")


def _any(*fragments: str) -> Predicate:
    return lambda text: any(fragment in text for fragment in fragments)


def _checkbox_filled(text: str) -> bool:
    return "checkbox" in text and "fill" in text


# (predicate over lower-cased error text, category), in evaluation order.
ERROR_RULES: list[tuple[Predicate, ErrorCategory]] = [
    (_any("not visible", "hidden", "表示されていません"), ErrorCategory.ELEMENT_NOT_VISIBLE),
    (_any("not enabled", "disabled"), ErrorCategory.ELEMENT_DISABLED),
    (_any("timeout", "timed out", "タイムアウト"), ErrorCategory.TIMEOUT),
    (
        _any(
            "resolved to 0 elements",
            "no element",
            "not found",
            "要素も見つかりません",
            "要素もクリックできません",
        ),
        ErrorCategory.ELEMENT_NOT_FOUND,
    ),
    (_checkbox_filled, ErrorCategory.CHECKBOX_MISUSE),
    (
        _any("cannot type text into input[type=number]", "type=number", 'type="number"'),
        ErrorCategory.NUMERIC_INPUT_VALIDATION,
    ),
]


def classify_error(error_text: str | None) -> ErrorCategory:
    """Map a raw error message to an :class:`ErrorCategory`."""
    text = (error_text or "").lower()
    for predicate, category in ERROR_RULES:
        if predicate(text):
            return category
    return ErrorCategory.UNKNOWN


def _name_selector(*candidates: str | None) -> str | None:
    for candidate in candidates:
        if not candidate:
            continue
        match = _NAME_SELECTOR_RE.search(candidate)
        if match:
            return match.group(1)
    return None


def suggest(step: Step, category: ErrorCategory) -> list[Suggestion]:
    """Return remediation suggestions ranked by confidence, highest first.

    Output depends only on ``step`` and ``category``.
    """
    suggestions: list[Suggestion] = []

    if category == ErrorCategory.ELEMENT_NOT_VISIBLE:
        suggestions.append(Suggestion(
            message="Scroll the element into view or wait for it to become visible",
            confidence=0.7,
            type="scroll_into_view",
        ))
    elif category == ErrorCategory.ELEMENT_DISABLED:
        suggestions.append(Suggestion(
            message="Wait until the element is enabled before interacting with it",
            confidence=0.6,
            type="wait_for_enabled",
        ))
        suggestions.append(Suggestion(
            message="Skip this step if the element is disabled by design in this state",
            confidence=0.5,
            type="skip_step",
        ))
    elif category == ErrorCategory.TIMEOUT:
        suggestions.append(Suggestion(
            message="Increase the timeout or wait for the page to settle before this step",
            confidence=0.7,
            type="increase_timeout",
        ))
    elif category == ErrorCategory.ELEMENT_NOT_FOUND:
        suggestions.append(Suggestion(
            message=f"Update the selector; {step.target or 'the target'} matches no element",
            confidence=0.8,
            type="update_selector",
        ))
        name = _name_selector(step.target, step.error)
        if name:
            suggestions.append(Suggestion(
                message=f'Try the id selector #{name} instead of [name="{name}"]',
                confidence=0.6,
                type="alternative_selector",
                new_target=f"#{name}",
            ))
    elif category == ErrorCategory.CHECKBOX_MISUSE:
        suggestions.append(Suggestion(
            message="Checkboxes cannot be filled; click the checkbox instead",
            confidence=0.9,
            type="change_action",
            new_action="click",
        ))
    elif category == ErrorCategory.NUMERIC_INPUT_VALIDATION:
        label = (step.label or "").lower()
        invalid_case = "無効" in label or "invalid" in label
        suggestions.append(Suggestion(
            message="Enter a numeric value in the number field",
            confidence=0.8,
            type="numeric_value",
            new_value="-1" if invalid_case else "1",
        ))
    else:
        suggestions.append(Suggestion(
            message="Review this step manually; the error matches no known pattern",
            confidence=0.3,
            type="manual_review",
        ))

    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)


def collect_failures(results: Iterable[ExecutionResult]) -> list[FailureDetail]:
    """Classify every failed step of the given results and deduplicate.

    Identical failures (same label, action, target, value, error) keep the
    most recent occurrence only.
    """
    failures: list[FailureDetail] = []
    for result in results:
        for step in result.steps:
            if not step.is_failed:
                continue
            category = classify_error(step.error)
            failures.append(FailureDetail(
                label=step.label,
                action=step.action,
                target=step.target,
                value=step.value or "",
                error=step.error or "",
                error_category=category,
                fix_suggestions=suggest(step, category),
                route_id=result.route_id or "",
                timestamp=result.timestamp or "",
            ))
    return dedup_failures(failures)


def group_by_category(
    failures: Sequence[FailureDetail],
) -> dict[ErrorCategory, list[FailureDetail]]:
    """Group failures by category, categories in rule order."""
    grouped: dict[ErrorCategory, list[FailureDetail]] = defaultdict(list)
    for failure in failures:
        grouped[failure.error_category].append(failure)
    return {category: grouped[category] for category in ErrorCategory if category in grouped}
