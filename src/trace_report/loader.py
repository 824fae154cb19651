"""Artifact discovery and parsing.

Reads viewpoint, test case, route and execution result files from one
artifact directory into pydantic models.  The parsers raise
:class:`ArtifactParseError` on malformed input; :func:`load_artifacts`
skips such files unless no execution result is left.  A directory without
any execution result raises :class:`ArtifactNotFoundError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.shared.constants import (
    CATEGORY_INDEX_FILE,
    FIXED_ROUTE_PREFIX,
    RESULT_PREFIX,
    ROUTE_PREFIX,
    TEST_CASES_PREFIX,
    TEST_POINTS_PREFIX,
)
from src.shared.errors import ArtifactNotFoundError, ArtifactParseError
from src.shared.models.artifacts import ExecutionResult, Route, TestCase, Viewpoint
from src.shared.utils import EPOCH, parse_timestamp
from src.trace_report.config import ReportConfig

logger = logging.getLogger(__name__)


@dataclass
class BatchCategory:
    category: str
    routes: list[Route] = field(default_factory=list)
    error: str | None = None


@dataclass
class CategoryBatch:
    """A route file generated category by category."""

    source_file: str
    categories: list[BatchCategory] = field(default_factory=list)


@dataclass
class ArtifactBundle:
    """Everything read from one artifact directory."""

    artifact_dir: Path
    viewpoints: list[Viewpoint] = field(default_factory=list)
    test_cases: list[TestCase] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)
    results: list[ExecutionResult] = field(default_factory=list)
    category_batches: list[CategoryBatch] = field(default_factory=list)
    route_files: dict[str, str] = field(default_factory=dict)  # route id -> file name
    latest_route_file: str | None = None
    skipped_files: list[str] = field(default_factory=list)

    def route_for(self, result: ExecutionResult) -> Route | None:
        """The newest route with the result's id (or original id for reruns)."""
        for route_id in (result.route_id, result.original_route_id):
            if not route_id:
                continue
            for route in reversed(self.routes):
                if route.route_id == route_id:
                    return route
        return self.routes[-1] if len(self.routes) == 1 else None

    def route_file_for(self, result: ExecutionResult) -> str:
        """Identity of the route file a result executed, used to key history."""
        for route_id in (result.route_id, result.original_route_id):
            if route_id and route_id in self.route_files:
                return self.route_files[route_id]
        return self.latest_route_file or result.source_file or "unknown"


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def read_json(path: Path) -> Any:
    """Load one JSON artifact.

    Raises:
        ArtifactParseError: If the file cannot be read or is not valid JSON.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Failed to read artifact %s: %s", path, exc)
        raise ArtifactParseError(f"Cannot parse {path.name}: {exc}", path=str(path)) from exc


def list_artifacts(artifact_dir: Path, prefix: str, reset_at: datetime | None = None) -> list[Path]:
    """JSON files starting with ``prefix``, oldest name first.

    Artifact names embed their creation time, so name order is age order.
    Files last modified before ``reset_at`` belong to a previous test cycle
    and are skipped.
    """
    paths = sorted(p for p in artifact_dir.glob(f"{prefix}*.json") if p.is_file())
    if reset_at is None:
        return paths
    kept = [
        p for p in paths
        if datetime.fromtimestamp(p.stat().st_mtime, tz=timezone.utc) >= reset_at
    ]
    if len(kept) < len(paths):
        logger.info("Skipped %d %s files from before the cycle reset", len(paths) - len(kept), prefix)
    return kept


def _invalid(source: str, detail: str) -> ArtifactParseError:
    logger.error("Malformed artifact %s: %s", source, detail)
    return ArtifactParseError(f"Malformed {source}: {detail}", path=source)


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def parse_viewpoints(data: Any, source: str = "viewpoints") -> list[Viewpoint]:
    """Accept ``[...]``, ``{"points": [...]}``, ``{"testCases": [...]}`` or ``{"categories": {...}}``."""
    if isinstance(data, dict):
        if isinstance(data.get("points"), list):
            items = data["points"]
        elif isinstance(data.get("testCases"), list):
            items = data["testCases"]
        elif isinstance(data.get("categories"), dict):
            items = [
                {**item, "category": item.get("category") or name}
                for name, entries in data["categories"].items()
                if isinstance(entries, list)
                for item in entries
                if isinstance(item, dict)
            ]
        else:
            raise _invalid(source, "expected a list or an object with 'points'")
    elif isinstance(data, list):
        items = data
    else:
        raise _invalid(source, "expected a list of viewpoints")
    viewpoints = [Viewpoint.from_raw(item, index + 1) for index, item in enumerate(items)]
    return [vp for vp in viewpoints if vp.text]


def _test_case(raw: Any, source: str, category: str | None = None) -> TestCase:
    if not isinstance(raw, dict):
        raise _invalid(source, "test case entries must be objects")
    if category and not raw.get("category"):
        raw = {**raw, "category": category}
    try:
        return TestCase.model_validate(raw)
    except ValidationError as exc:
        raise _invalid(source, str(exc)) from exc


def parse_test_cases(data: Any, source: str = "test cases") -> list[TestCase]:
    """Accept ``[...]``, ``{"testCases": [...]}`` or ``{"categories": {name: [...]}}``."""
    if isinstance(data, list):
        return [_test_case(item, source) for item in data]
    if isinstance(data, dict):
        if isinstance(data.get("categories"), dict):
            cases: list[TestCase] = []
            for name, items in data["categories"].items():
                if isinstance(items, dict):
                    items = items.get("testCases", [])
                if not isinstance(items, list):
                    raise _invalid(source, f"category {name!r} is not a list")
                cases.extend(_test_case(item, source, category=name) for item in items)
            return cases
        if isinstance(data.get("testCases"), list):
            return [_test_case(item, source) for item in data["testCases"]]
    raise _invalid(source, "expected a list, 'testCases' or 'categories'")


def _route(raw: Any, source: str, category: str | None = None) -> Route:
    if not isinstance(raw, dict):
        raise _invalid(source, "route entries must be objects")
    if category and not raw.get("category"):
        raw = {**raw, "category": category}
    try:
        return Route.model_validate(raw)
    except ValidationError as exc:
        raise _invalid(source, str(exc)) from exc


def parse_routes(data: Any, source: str = "routes") -> tuple[list[Route], CategoryBatch | None]:
    """Parse a route file.

    Accepts a single route, a list of routes, or the category batch form
    ``{"processing_mode": "category_batch", "categories": [...]}`` whose
    routes are flattened and tagged with their category.
    """
    if isinstance(data, list):
        return [_route(item, source) for item in data], None
    if not isinstance(data, dict):
        raise _invalid(source, "expected a route object")
    if data.get("processing_mode") == "category_batch" or isinstance(data.get("categories"), list):
        batch = CategoryBatch(source_file=source)
        routes: list[Route] = []
        for raw_category in data.get("categories") or []:
            if not isinstance(raw_category, dict):
                raise _invalid(source, "batch categories must be objects")
            name = str(raw_category.get("category") or "未分類")
            category_routes = [_route(r, source, name) for r in raw_category.get("routes") or []]
            batch.categories.append(
                BatchCategory(category=name, routes=category_routes, error=raw_category.get("error"))
            )
            routes.extend(category_routes)
        return routes, batch
    return [_route(data, source)], None


def parse_result(data: Any, source: str = "result") -> ExecutionResult:
    if not isinstance(data, dict):
        raise _invalid(source, "expected an execution result object")
    try:
        result = ExecutionResult.model_validate(data)
    except ValidationError as exc:
        raise _invalid(source, str(exc)) from exc
    if result.source_file is None:
        result.source_file = source
    return result


def _load_category_index(artifact_dir: Path, path: Path) -> list[TestCase]:
    """Load test cases through ``index.json``'s per-category file references."""
    index = read_json(path)
    categories = index.get("categories") if isinstance(index, dict) else None
    if not isinstance(categories, dict):
        raise _invalid(path.name, "expected 'categories' mapping")
    cases: list[TestCase] = []
    for name, ref in categories.items():
        if isinstance(ref, dict):
            ref = ref.get("file") or ref.get("path")
        if not isinstance(ref, str):
            raise _invalid(path.name, f"category {name!r} has no file reference")
        category_path = artifact_dir / ref
        if not category_path.exists():
            raise ArtifactNotFoundError(f"{path.name} references missing file {ref}")
        data = read_json(category_path)
        if isinstance(data, dict) and "testCases" in data:
            data = data["testCases"]
        if not isinstance(data, list):
            raise _invalid(ref, "expected a list of test cases")
        cases.extend(_test_case(item, ref, category=name) for item in data)
    return cases


# ---------------------------------------------------------------------------
# Directory loading
# ---------------------------------------------------------------------------


def _skip(bundle: ArtifactBundle, source: str, exc: ArtifactNotFoundError | ArtifactParseError) -> None:
    logger.warning("Skipping artifact %s: %s", source, exc.detail)
    bundle.skipped_files.append(source)


def load_artifacts(artifact_dir: Path | str, config: ReportConfig | None = None) -> ArtifactBundle:
    """Discover and parse every artifact in ``artifact_dir``.

    Viewpoints come from the newest natural-language test case file, or
    from the newest ``testPoints_`` file when that yields none.  Test cases
    come from ``index.json`` when present, else the newest natural-language
    test case file.  All route and result files are read.

    Only execution results are required.  A malformed optional artifact, or
    one malformed result among several, is logged, listed in
    ``skipped_files`` and left out.

    Raises:
        ArtifactNotFoundError: If the directory or every execution result is missing.
        ArtifactParseError: If no execution result file can be parsed.
    """
    config = config or ReportConfig()
    directory = Path(artifact_dir)
    if not directory.is_dir():
        raise ArtifactNotFoundError(f"Artifact directory not found: {directory}")

    reset_at = parse_timestamp(config.cycle_reset_at) if config.cycle_reset_at else None
    if reset_at == EPOCH:
        reset_at = None
    bundle = ArtifactBundle(artifact_dir=directory)

    result_paths = list_artifacts(directory, RESULT_PREFIX, reset_at)
    if config.max_result_files:
        result_paths = result_paths[-config.max_result_files:]
    if not result_paths:
        raise ArtifactNotFoundError(f"No {RESULT_PREFIX}*.json execution results in {directory}")
    for path in result_paths:
        try:
            bundle.results.append(parse_result(read_json(path), path.name))
        except ArtifactParseError as exc:
            _skip(bundle, path.name, exc)
    if not bundle.results:
        raise ArtifactParseError(
            f"No readable {RESULT_PREFIX}*.json execution result in {directory}",
            path=str(directory),
        )

    route_paths = sorted(
        list_artifacts(directory, ROUTE_PREFIX, reset_at)
        + list_artifacts(directory, FIXED_ROUTE_PREFIX, reset_at),
        key=lambda p: (p.stat().st_mtime, p.name),
    )
    for path in route_paths:
        try:
            routes, batch = parse_routes(read_json(path), path.name)
        except ArtifactParseError as exc:
            _skip(bundle, path.name, exc)
            continue
        bundle.routes.extend(routes)
        for route in routes:
            if route.route_id:
                bundle.route_files[route.route_id] = path.name
        if batch is not None:
            bundle.category_batches.append(batch)
        bundle.latest_route_file = path.name
    if not route_paths:
        logger.warning("No route files in %s; automation metrics will be empty", directory)

    newest_cases: Any = None
    case_paths = list_artifacts(directory, TEST_CASES_PREFIX, reset_at)
    if case_paths:
        try:
            newest_cases = read_json(case_paths[-1])
            bundle.viewpoints = parse_viewpoints(newest_cases, case_paths[-1].name)
        except ArtifactParseError as exc:
            newest_cases = None
            _skip(bundle, case_paths[-1].name, exc)

    point_paths = list_artifacts(directory, TEST_POINTS_PREFIX, reset_at)
    if not bundle.viewpoints and point_paths:
        try:
            bundle.viewpoints = parse_viewpoints(read_json(point_paths[-1]), point_paths[-1].name)
        except ArtifactParseError as exc:
            _skip(bundle, point_paths[-1].name, exc)

    index_path = directory / CATEGORY_INDEX_FILE
    if index_path.exists():
        try:
            bundle.test_cases = _load_category_index(directory, index_path)
        except (ArtifactNotFoundError, ArtifactParseError) as exc:
            _skip(bundle, index_path.name, exc)
    if not bundle.test_cases and newest_cases is not None:
        try:
            bundle.test_cases = parse_test_cases(newest_cases, case_paths[-1].name)
        except ArtifactParseError as exc:
            _skip(bundle, case_paths[-1].name, exc)

    logger.info(
        "Loaded %s: %d viewpoints, %d test cases, %d routes, %d results, %d skipped",
        directory,
        len(bundle.viewpoints),
        len(bundle.test_cases),
        len(bundle.routes),
        len(bundle.results),
        len(bundle.skipped_files),
    )
    return bundle
