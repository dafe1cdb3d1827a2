"""Pytest configuration for test isolation.

The package reads its settings from ``DATABASE_URL`` and ``BETTER_BUDGET_*``
environment variables, caches one SQLAlchemy engine per URL, and configures
the package logger once per process. Any of those leaking between tests makes
results order-dependent, so an autouse fixture clears them around each test.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from better_budget.logging_setup import reset_logging  # noqa: E402
from db.client import dispose_engines  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop ambient configuration so every test starts from defaults."""

    for name in list(os.environ):
        if name == "DATABASE_URL" or name.startswith("BETTER_BUDGET_"):
            monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()
    reset_logging()
