# ruff: noqa: E402, I001
import io
import logging
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `better_budget` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from better_budget.config import Settings  # noqa: E402
from better_budget.logging_setup import configure_logging, get_logger, parse_level  # noqa: E402


def test_defaults_without_environment():
    s = Settings.from_env({})
    assert s.database_url is None
    assert s.log_level is None
    assert s.import_concurrency == 1
    assert (s.host, s.port) == ("127.0.0.1", 8000)


def test_reads_environment():
    s = Settings.from_env(
        {
            "DATABASE_URL": "sqlite+pysqlite:///bb.db",
            "BETTER_BUDGET_LOG_LEVEL": "debug",
            "BETTER_BUDGET_IMPORT_CONCURRENCY": "4",
            "BETTER_BUDGET_HOST": "0.0.0.0",
            "BETTER_BUDGET_PORT": "9000",
        }
    )
    assert s.database_url == "sqlite+pysqlite:///bb.db"
    assert s.log_level == "debug"
    assert s.import_concurrency == 4
    assert (s.host, s.port) == ("0.0.0.0", 9000)


@pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("-3", 1), ("99", 16), ("many", 1)])
def test_import_concurrency_is_clamped(raw, expected):
    s = Settings.from_env({"BETTER_BUDGET_IMPORT_CONCURRENCY": raw})
    assert s.import_concurrency == expected


def test_process_environment_is_the_default(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BETTER_BUDGET_PORT", "8123")
    assert Settings.from_env().port == 8123


@pytest.mark.parametrize(
    ("level", "expected"),
    [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("10", 10), (30, 30)],
)
def test_parse_level(level, expected):
    assert parse_level(level) == expected


def test_parse_level_falls_back_to_env_then_info(monkeypatch: pytest.MonkeyPatch):
    assert parse_level(None) == logging.INFO
    monkeypatch.setenv("BETTER_BUDGET_LOG_LEVEL", "ERROR")
    assert parse_level(None) == logging.ERROR


def test_configure_logging_attaches_one_handler():
    buf = io.StringIO()
    configure_logging("INFO", stream=buf)
    configure_logging("DEBUG", stream=io.StringIO())  # ignored: already configured

    get_logger("better_budget.test").info("hello %s", "world")
    get_logger("better_budget.test").debug("hidden")

    pkg = logging.getLogger("better_budget")
    assert len(pkg.handlers) == 1
    out = buf.getvalue()
    assert "better_budget.test INFO hello world" in out
    assert "hidden" not in out
