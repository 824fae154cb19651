"""Shared configuration management using pydantic-settings."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class SharedConfig(BaseSettings):
    """Base configuration shared across all commands."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class ReportSettings(SharedConfig):
    """Environment settings for the report generator."""
    artifact_dir: str = Field(
        default="./test-results", validation_alias="ARTIFACT_DIR"
    )
    output_dir: str = Field(default="", validation_alias="REPORT_OUTPUT_DIR")
    config_path: str = Field(default="", validation_alias="REPORT_CONFIG_PATH")
