"""ReportConfig -- tunables for report generation with YAML loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from src.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

MAPPER_CHOICES: tuple[str, ...] = ("positional", "keyword")


@dataclass
class ReportConfig:
    """Tunables for one report generation.

    The ``from_yaml`` factory reads the ``report:`` section of a YAML
    config file.  Values are range-checked on construction.
    """

    # Traceability
    unmapped_bucket_size: int = 5
    mapper: str = "positional"

    # Coverage thresholds
    feasible_threshold: float = 0.7
    low_feasibility_threshold: float = 0.3
    route_success_threshold: float = 0.9

    # Duplicate-run advisory
    debounce_minutes: int = 30
    history_limit: int = 10
    history_filename: str = ".execution-history.json"
    auto_remediate: bool = False

    # Artifact discovery
    max_result_files: int = 0  # 0 = every result file
    cycle_reset_at: str | None = None

    # Output
    extended_columns: bool = False

    def __post_init__(self) -> None:
        """Validate ranges of the numeric tunables."""
        if self.unmapped_bucket_size < 1:
            raise ValueError(
                f"unmapped_bucket_size must be >= 1, got {self.unmapped_bucket_size}"
            )
        if self.mapper not in MAPPER_CHOICES:
            raise ValueError(
                f"mapper must be one of {', '.join(MAPPER_CHOICES)}, got {self.mapper!r}"
            )
        for name in ("feasible_threshold", "low_feasibility_threshold", "route_success_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.low_feasibility_threshold > self.feasible_threshold:
            raise ValueError(
                "low_feasibility_threshold must not exceed feasible_threshold"
            )
        if self.debounce_minutes < 0:
            raise ValueError(f"debounce_minutes must be >= 0, got {self.debounce_minutes}")
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be >= 1, got {self.history_limit}")
        if self.max_result_files < 0:
            raise ValueError(f"max_result_files must be >= 0, got {self.max_result_files}")

    @classmethod
    def from_yaml(cls, path: str | Path) -> ReportConfig:
        """Parse a ``report:`` section from a YAML configuration file.

        Unknown keys are silently ignored for forward-compatibility.  A
        file without a ``report:`` section yields the defaults.

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML,
                or holds an out-of-range value.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                raw: Any = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

        section = raw.get("report", {}) if isinstance(raw, dict) else {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"'report:' section in {path} must be a mapping")

        # Filter to known field names
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in section.items() if k in known_fields}

        try:
            config = cls(**filtered)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid report config in {path}: {exc}") from exc
        logger.info("Loaded ReportConfig from %s (%d keys)", path, len(filtered))
        return config
