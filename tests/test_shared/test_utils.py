"""Tests for shared utility functions."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from src.shared.utils import EPOCH, atomic_write_json, atomic_write_text, parse_timestamp


class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2026-10-01T09:15:00Z") == datetime(2026, 10, 1, 9, 15, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2026-10-01T09:15:00").tzinfo is not None

    def test_epoch_seconds_and_millis(self):
        assert parse_timestamp(1_000_000_000) == parse_timestamp(1_000_000_000_000)

    def test_numeric_strings(self):
        assert parse_timestamp("1000000000") == parse_timestamp(1_000_000_000)
        assert parse_timestamp("1000000000000") == parse_timestamp(1_000_000_000)
        assert parse_timestamp(" 1759309200.5 ") > parse_timestamp("1759309200")

    @pytest.mark.parametrize("value", [None, "", "yesterday", [], True])
    def test_unparseable_is_epoch(self, value):
        assert parse_timestamp(value) == EPOCH


class TestAtomicWrite:
    def test_writes_text(self, tmp_path: Path):
        path = tmp_path / "nested" / "out.txt"
        atomic_write_text(path, "中身")
        assert path.read_text(encoding="utf-8") == "中身"
        assert not list(path.parent.glob("*.tmp"))

    def test_encoding(self, tmp_path: Path):
        path = tmp_path / "out.csv"
        atomic_write_text(path, "a", encoding="utf-8-sig")
        assert path.read_bytes() == b"\xef\xbb\xbfa"

    def test_json(self, tmp_path: Path):
        path = tmp_path / "out.json"
        atomic_write_json(path, {"観点": 1})
        assert json.loads(path.read_text(encoding="utf-8")) == {"観点": 1}

    def test_failure_cleans_up(self, tmp_path: Path):
        path = tmp_path / "out.txt"
        path.write_text("old", encoding="utf-8")
        with patch("src.shared.utils.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write_text(path, "new")
        assert path.read_text(encoding="utf-8") == "old"
        assert not (tmp_path / "out.txt.tmp").exists()
