"""Runtime settings resolved from the environment.

Entrypoints call ``load_dotenv(override=False)`` first, so a local ``.env``
can provide any of these without overriding variables already exported in
the shell.

Variables
---------
``DATABASE_URL``
    SQLAlchemy URL for the transaction store. When unset, the HTTP service and
    CLI fall back to an in-memory store.
``BETTER_BUDGET_LOG_LEVEL``
    Level name or number for the package logger (default ``INFO``).
``BETTER_BUDGET_IMPORT_CONCURRENCY``
    Worker count used to apply records during an import (default ``1``,
    capped at 16).
``BETTER_BUDGET_HOST`` / ``BETTER_BUDGET_PORT``
    Bind address for ``better-budget serve`` (default ``127.0.0.1:8000``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_MAX_IMPORT_CONCURRENCY = 16


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    log_level: str | None = None
    import_concurrency: int = 1
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env
        concurrency = _int_env(env, "BETTER_BUDGET_IMPORT_CONCURRENCY", 1)
        return cls(
            database_url=(env.get("DATABASE_URL") or None),
            log_level=(env.get("BETTER_BUDGET_LOG_LEVEL") or None),
            import_concurrency=max(1, min(concurrency, _MAX_IMPORT_CONCURRENCY)),
            host=env.get("BETTER_BUDGET_HOST") or "127.0.0.1",
            port=_int_env(env, "BETTER_BUDGET_PORT", 8000),
        )


__all__ = ["Settings"]
