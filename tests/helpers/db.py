"""DB helpers for tests: bootstrap a temporary SQLite DB and inspect rows."""

from __future__ import annotations

import os
from pathlib import Path

from db.client import session_scope
from db.models.finance import BbTransaction
from sqlalchemy import func, select
from sqlalchemy import text as sql_text

from better_budget.persistence import create_schema


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    # Ensure parent exists before engine creation attempts any writes
    db_file.parent.mkdir(parents=True, exist_ok=True)
    create_schema(database_url=url)
    _assert_transactions_schema_in_sync(url)

    # Make it the default for any code paths that read from the environment
    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def count_transactions(database_url: str, account_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(BbTransaction)
    if account_id is not None:
        stmt = stmt.where(BbTransaction.account_id == account_id)
    with session_scope(database_url=database_url) as session:
        return int(session.execute(stmt).scalar_one())


def _assert_transactions_schema_in_sync(database_url: str) -> None:
    """Quick sanity check: ORM column set matches SQLite table column set."""

    expected = {c.name for c in BbTransaction.__table__.columns}
    with session_scope(database_url=database_url) as session:
        rows = session.execute(sql_text("PRAGMA table_info('bb_transactions')")).fetchall()
        got = {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)
    missing = expected - got
    extra = got - expected
    assert not missing and not extra, (
        f"bb_transactions schema drift: missing={missing or '∅'}, extra={extra or '∅'}"
    )
