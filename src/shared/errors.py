"""Custom exception classes for report generation.

Only input and output failures are exceptions. Failed test steps are
report data and never raise.
"""
from __future__ import annotations


class ReportError(Exception):
    """Base report generation error."""

    def __init__(self, detail: str, exit_code: int = 1) -> None:
        self.detail = detail
        self.exit_code = exit_code
        super().__init__(detail)


class ArtifactNotFoundError(ReportError):
    """A required artifact is missing (exit 2)."""

    def __init__(self, detail: str = "Artifact not found") -> None:
        super().__init__(detail=detail, exit_code=2)


class ArtifactParseError(ReportError):
    """An artifact could not be read or parsed (exit 3)."""

    def __init__(self, detail: str = "Artifact parse error", path: str = "") -> None:
        self.path = path
        super().__init__(detail=detail, exit_code=3)


class ConfigurationError(ReportError):
    """Invalid configuration file or tunable (exit 4)."""

    def __init__(self, detail: str = "Invalid configuration") -> None:
        super().__init__(detail=detail, exit_code=4)


class ReportWriteError(ReportError):
    """An output file could not be written (exit 5)."""

    def __init__(self, detail: str = "Report write failed", path: str = "") -> None:
        self.path = path
        super().__init__(detail=detail, exit_code=5)
