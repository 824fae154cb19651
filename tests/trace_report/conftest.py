"""Shared fixtures for the trace report test suite.

Builds artifact directories the way the generation pipeline lays them
out: ``testPoints_*``, ``naturalLanguageTestCases_*``, ``route_*`` and
``result_*`` JSON files side by side.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from src.shared.models.artifacts import ExecutionResult, Step, Viewpoint


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def write_json(directory: Path, name: str, data: Any) -> Path:
    path = directory / name
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


def make_steps(count: int, failed: tuple[int, ...] = (), error: str = "Timeout 5000ms exceeded") -> list[dict]:
    """Executed step dicts; indices in ``failed`` carry ``error``."""
    steps = []
    for i in range(count):
        step = {
            "label": f"ステップ{i + 1}",
            "action": "click",
            "target": f"#button-{i + 1}",
            "status": "failed" if i in failed else "success",
        }
        if i in failed:
            step["error"] = error
        steps.append(step)
    return steps


def make_result(
    route_id: str,
    timestamp: str,
    count: int = 10,
    failed: tuple[int, ...] = (),
    **extra: Any,
) -> ExecutionResult:
    steps = make_steps(count, failed)
    return ExecutionResult.model_validate({
        "route_id": route_id,
        "timestamp": timestamp,
        "steps": steps,
        "success_count": count - len(failed),
        "failed_count": len(failed),
        **extra,
    })


def make_viewpoints(input_count: int = 5, display_count: int = 5) -> list[Viewpoint]:
    viewpoints = [
        Viewpoint(index=i + 1, text=f"入力フォームの検証{i + 1}", category="input_validation")
        for i in range(input_count)
    ]
    viewpoints += [
        Viewpoint(index=input_count + i + 1, text=f"画面表示の確認{i + 1}", category="display")
        for i in range(display_count)
    ]
    return viewpoints


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def viewpoints() -> list[Viewpoint]:
    return make_viewpoints()


@pytest.fixture
def steps() -> list[Step]:
    return [Step.model_validate(s) for s in make_steps(10)]


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """A complete artifact directory: 10 viewpoints, 10 test cases, 1 route, 1 result."""
    directory = tmp_path / "test-results"
    directory.mkdir()
    write_json(directory, "testPoints_2026-10-01T0900.json", [
        {"No": i + 1, "考慮すべき仕様の具体例": vp.text, "category": vp.category}
        for i, vp in enumerate(make_viewpoints())
    ])
    write_json(directory, "naturalLanguageTestCases_2026-10-01T0905.json", {
        "testCases": [
            {"id": f"TC{i + 1:03d}", "original_viewpoint": vp.text, "category": vp.category}
            for i, vp in enumerate(make_viewpoints())
        ],
    })
    write_json(directory, "route_2026-10-01T0910.json", {
        "route_id": "route-001",
        "user_story": "ユーザーストーリー7: 会員として予約したい",
        "url": "https://example.test/reserve",
        "feasibility_score": 0.85,
        "generated_from_natural_case": "TC001",
        "steps": [{"label": s["label"], "action": s["action"], "target": s["target"]} for s in make_steps(10)],
    })
    write_json(directory, "result_2026-10-01T0915.json", {
        "route_id": "route-001",
        "timestamp": "2026-10-01T09:15:00Z",
        "steps": make_steps(10),
        "success_count": 10,
        "failed_count": 0,
    })
    return directory
