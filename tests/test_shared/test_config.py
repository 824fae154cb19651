"""Tests for configuration management."""
from __future__ import annotations

import pytest

from src.shared.config import ReportSettings, SharedConfig


class TestSharedConfig:
    def test_default_values(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert SharedConfig().log_level == "info"

    def test_env_override_log_level(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert SharedConfig().log_level == "debug"


class TestReportSettings:
    def test_default_values(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("ARTIFACT_DIR", "REPORT_OUTPUT_DIR", "REPORT_CONFIG_PATH"):
            monkeypatch.delenv(name, raising=False)
        settings = ReportSettings()
        assert settings.artifact_dir == "./test-results"
        assert settings.output_dir == ""
        assert settings.config_path == ""

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ARTIFACT_DIR", "/data/run-1")
        monkeypatch.setenv("REPORT_OUTPUT_DIR", "/data/reports")
        monkeypatch.setenv("REPORT_CONFIG_PATH", "/etc/report.yaml")
        settings = ReportSettings()
        assert settings.artifact_dir == "/data/run-1"
        assert settings.output_dir == "/data/reports"
        assert settings.config_path == "/etc/report.yaml"

    def test_inherits_log_level(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert ReportSettings().log_level == "warning"

    def test_populate_by_name(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("ARTIFACT_DIR", raising=False)
        assert ReportSettings(artifact_dir="/x").artifact_dir == "/x"
