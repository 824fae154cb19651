"""Tests for artifact models."""
from __future__ import annotations

from src.shared.models.artifacts import (
    ExecutionResult,
    Route,
    Step,
    StepStatus,
    TestCase,
    Viewpoint,
)


class TestViewpoint:
    def test_from_string(self):
        assert Viewpoint.from_raw("検索できる", 4).text == "検索できる"

    def test_preferred_field(self):
        vp = Viewpoint.from_raw({"No": "2", "viewpoint": "b", "考慮すべき仕様の具体例": "a"}, 1)
        assert vp.text == "a"
        assert vp.index == 2

    def test_bad_number_uses_position(self):
        assert Viewpoint.from_raw({"No": "x", "text": "t"}, 5).index == 5


class TestStep:
    def test_status_aliases(self):
        assert Step(status="PASS").status == StepStatus.SUCCESS
        assert Step(status="error").status == StepStatus.FAILED
        assert Step(status=True).status == StepStatus.SUCCESS
        assert Step(status="pending").status is None

    def test_scalar_values_stringified(self):
        step = Step(value=12, target=None)
        assert step.value == "12"
        assert step.target == ""

    def test_extra_fields_allowed(self):
        assert Step.model_validate({"action": "click", "timeout": 5}).action == "click"


class TestExecutionResult:
    def test_counts_derived_from_steps(self):
        result = ExecutionResult.model_validate({
            "steps": [{"status": "success"}, {"status": "failed"}, {"status": "skipped"}],
        })
        assert result.successes == 1
        assert result.failures == 1
        assert result.executed_steps == 3
        assert result.success_rate == 0.5

    def test_recorded_counts_win(self):
        result = ExecutionResult(success_count=9, failed_count=1, total_steps=10)
        assert result.success_rate == 0.9
        assert result.executed_steps == 10

    def test_no_steps(self):
        result = ExecutionResult()
        assert result.executed_steps == 0
        assert result.success_rate == 0.0


class TestOtherModels:
    def test_route_null_steps(self):
        assert Route.model_validate({"route_id": 5, "steps": None}).steps == []

    def test_test_case_defaults(self):
        case = TestCase.model_validate({"id": 3, "category": None})
        assert case.id == "3"
        assert case.category == "general"
