"""Pydantic models for the artifacts written by the test-generation pipeline.

Producers are loose about field presence and types, so every model allows
extra fields and coerces scalar values in ``mode="before"`` validators.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Field names that may carry the viewpoint sentence, in lookup order.
VIEWPOINT_TEXT_FIELDS: tuple[str, ...] = (
    "考慮すべき仕様の具体例",
    "viewpoint",
    "original_viewpoint",
    "description",
    "content",
    "text",
)


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class Viewpoint(BaseModel):
    """A testable concern written in natural language."""
    index: int = 0
    text: str
    category: str | None = None
    priority: str | None = None

    model_config = {"extra": "allow"}

    @classmethod
    def from_raw(cls, raw: Any, index: int) -> Viewpoint:
        """Build a viewpoint from one entry of a viewpoint file.

        Strings are taken as the text itself.  Mappings use the first
        non-empty text field, falling back to the longest string value.
        """
        if isinstance(raw, str):
            return cls(index=index, text=raw)
        if not isinstance(raw, dict):
            return cls(index=index, text=str(raw))
        text = ""
        for name in VIEWPOINT_TEXT_FIELDS:
            value = raw.get(name)
            if isinstance(value, str) and value.strip():
                text = value
                break
        if not text:
            strings = [v for k, v in raw.items() if isinstance(v, str) and k != "No"]
            text = max(strings, key=len) if strings else ""
        number = raw.get("No", raw.get("index", index))
        try:
            number = int(number)
        except (TypeError, ValueError):
            number = index
        return cls(
            index=number,
            text=text,
            category=raw.get("category"),
            priority=_stringify(raw.get("priority")),
        )


class TestCase(BaseModel):
    """A natural-language test case derived from a viewpoint."""
    __test__ = False

    id: str = ""
    original_viewpoint: str = Field(default="", validation_alias="originalViewpoint")
    category: str = "general"
    title: str | None = None

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return "" if v is None else _stringify(v)

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, v: Any) -> Any:
        return v or "general"


class Step(BaseModel):
    """A single action of a route, optionally carrying its execution outcome."""
    label: str = ""
    action: str = ""
    target: str = ""
    value: str | None = None
    status: StepStatus | None = None
    error: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("label", "action", "target", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return "" if v is None else _stringify(v)

    @field_validator("value", "error", mode="before")
    @classmethod
    def _coerce_optional(cls, v: Any) -> Any:
        return _stringify(v)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            return StepStatus.SUCCESS if v else StepStatus.FAILED
        text = str(v).strip().lower()
        if text in ("passed", "pass", "ok"):
            return StepStatus.SUCCESS
        if text in ("fail", "error"):
            return StepStatus.FAILED
        if text in {s.value for s in StepStatus}:
            return text
        return None

    @property
    def is_failed(self) -> bool:
        return self.status == StepStatus.FAILED


class Route(BaseModel):
    """An ordered sequence of executable steps."""
    route_id: str | None = None
    steps: list[Step] = Field(default_factory=list)
    feasibility_score: float | None = None
    url: str | None = None
    user_story: str | None = None
    goal: str | None = None
    category: str | None = None
    generated_from_natural_case: str | None = None
    original_viewpoint: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("route_id", "generated_from_natural_case", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return _stringify(v)

    @field_validator("steps", mode="before")
    @classmethod
    def _steps_list(cls, v: Any) -> Any:
        return v or []


class ExecutionResult(BaseModel):
    """One execution of a route as recorded by the browser driver."""
    route_id: str | None = None
    timestamp: str | None = None
    steps: list[Step] = Field(default_factory=list)
    success_count: int | None = None
    failed_count: int | None = None
    total_steps: int | None = None
    is_fixed_route: bool = False
    original_route_id: str | None = None
    url: str | None = None
    source_file: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("route_id", "original_route_id", "timestamp", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return _stringify(v)

    @field_validator("steps", mode="before")
    @classmethod
    def _steps_list(cls, v: Any) -> Any:
        return v or []

    @field_validator("is_fixed_route", mode="before")
    @classmethod
    def _fixed_flag(cls, v: Any) -> Any:
        return bool(v)

    @property
    def successes(self) -> int:
        """Successful step count, derived from steps when not recorded."""
        if self.success_count is not None:
            return self.success_count
        return sum(1 for s in self.steps if s.status == StepStatus.SUCCESS)

    @property
    def failures(self) -> int:
        """Failed step count, derived from steps when not recorded."""
        if self.failed_count is not None:
            return self.failed_count
        return sum(1 for s in self.steps if s.is_failed)

    @property
    def executed_steps(self) -> int:
        if self.total_steps is not None:
            return self.total_steps
        if self.steps:
            return len(self.steps)
        return self.successes + self.failures

    @property
    def success_rate(self) -> float:
        """Fraction of counted steps that succeeded, 0.0 when none ran."""
        counted = self.successes + self.failures
        if counted == 0:
            return 0.0
        return self.successes / counted
