"""Shared test fixtures for the trace-report test suite."""
from __future__ import annotations

import pytest

from src.shared.logging import run_id_var


@pytest.fixture(autouse=True)
def _reset_run_id():
    """Each test starts without a bound run id."""
    token = run_id_var.set("")
    yield
    run_id_var.reset(token)
