"""Shared utility functions."""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> datetime:
    """Parse an artifact timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without ``Z``), epoch seconds or
    milliseconds given as numbers or numeric strings, and datetimes.
    Anything missing or unparseable is the epoch, so it sorts as the
    oldest record.
    """
    if value is None or value == "":
        return EPOCH
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_timestamp(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return EPOCH
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return EPOCH


def atomic_write_text(path: Path | str, content: str, encoding: str = "utf-8") -> None:
    """Write text atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        content: Text to write.
        encoding: File encoding.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding=encoding, newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        # Clean up temp file on any failure
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_write_json(path: Path | str, data: Any) -> None:
    """Write JSON data atomically.

    Args:
        path: Target file path.
        data: JSON-serialisable data to write.
    """
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False, default=str))
