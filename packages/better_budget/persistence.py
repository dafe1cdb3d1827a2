# ruff: noqa: I001
"""SQL-backed transaction store.

Rows live in ``bb_transactions`` (ORM model in ``db.models.finance``) with a
unique constraint on ``(account_id, external_id)``. Each write scope runs in
its own short transaction:

- ``lookup()`` issues ``SELECT ... FOR UPDATE`` so concurrent importers
  serialize on the row (SQLite ignores the clause; its database-level write
  lock gives the same guarantee).
- Two writers inserting the same new key race on the unique constraint; the
  loser's ``IntegrityError`` surfaces as :class:`ConcurrentWriteError` so the
  reconciler can retry against the now-existing row.
- Any other ``SQLAlchemyError`` surfaces as :class:`StorageError`.

One commit per record means a cancelled or failing import keeps every write
that completed before it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db import Base
from db.client import get_engine, get_session
from db.models.finance import BbImportRun, BbTransaction
from .errors import ConcurrentWriteError, StorageError, TransactionNotFoundError
from .logging_setup import get_logger
from .models import ImportRun, StoredTransaction, TransactionRecord, quantize_amount
from .storage import UNCHANGED, RecordWriter, UserFieldEdit, apply_user_fields

logger = get_logger("better_budget.persistence")

type SessionFactory = Callable[[], Session]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _sourced_columns(record: TransactionRecord) -> dict[str, Any]:
    return {
        "booked_at": record.date,
        "amount": record.amount,
        "currency": record.currency,
        "description": record.description,
        "category": record.category,
        "type": record.type,
    }


def to_stored(row: BbTransaction) -> StoredTransaction:
    record = TransactionRecord.model_validate(
        {
            "external_id": row.external_id,
            "date": _as_utc(row.booked_at),
            "amount": row.amount,
            "currency": row.currency,
            "description": row.description,
            "category": row.category,
            "type": row.type,
        }
    )
    return StoredTransaction(
        account_id=row.account_id,
        record=record,
        category_override=row.category_override,
        note=row.note,
        verified=bool(row.verified),
        category_source=row.category_source,
    )


def _select_row(session: Session, account_id: str, external_id: str, *, lock: bool):
    stmt = select(BbTransaction).where(
        (BbTransaction.account_id == account_id) & (BbTransaction.external_id == external_id)
    )
    if lock:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


class _SqlWriter:
    def __init__(self, session: Session, account_id: str, external_id: str) -> None:
        self._session = session
        self._account_id = account_id
        self._external_id = external_id
        self._row: BbTransaction | None = None

    def lookup(self) -> StoredTransaction | None:
        self._row = _select_row(self._session, self._account_id, self._external_id, lock=True)
        return to_stored(self._row) if self._row is not None else None

    def insert(self, record: TransactionRecord) -> None:
        now = datetime.now(UTC)
        self._row = BbTransaction(
            account_id=self._account_id,
            external_id=self._external_id,
            **_sourced_columns(record),
            verified=False,
            category_source="import",
            created_at=now,
            updated_at=now,
        )
        self._session.add(self._row)
        self._session.flush()

    def update(self, record: TransactionRecord) -> None:
        row = self._row
        if row is None:
            row = _select_row(self._session, self._account_id, self._external_id, lock=True)
        if row is None:
            raise StorageError(f"no row for external_id {self._external_id!r}")
        for name, value in _sourced_columns(record).items():
            setattr(row, name, value)
        row.updated_at = datetime.now(UTC)
        self._session.flush()


class SqlTransactionStore:
    """:class:`~better_budget.storage.TransactionStore` over SQLAlchemy.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL; falls back to ``DATABASE_URL`` via ``db.client``.
    session_factory:
        Optional zero-argument callable returning a new ``Session``. Takes
        precedence over ``database_url`` (tests use it to inject failures).
    """

    def __init__(
        self,
        *,
        database_url: str | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._database_url = database_url
        self._session_factory: SessionFactory = session_factory or (
            lambda: get_session(database_url=database_url)
        )

    @contextmanager
    def _transaction(self, what: str) -> Iterator[Session]:
        try:
            session = self._session_factory()
        except SQLAlchemyError as e:
            raise StorageError(f"{what}: cannot open session: {e}") from e
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConcurrentWriteError(f"{what}: conflicting write: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"{what}: {e}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def lookup_by_external_id(self, account_id: str, external_id: str) -> StoredTransaction | None:
        with self._transaction(f"lookup {external_id}") as session:
            row = _select_row(session, account_id, external_id, lock=False)
            return to_stored(row) if row is not None else None

    @contextmanager
    def write_scope(self, account_id: str, external_id: str) -> Iterator[RecordWriter]:
        with self._transaction(f"write {external_id}") as session:
            yield _SqlWriter(session, account_id, external_id)

    def set_user_fields(
        self,
        account_id: str,
        external_id: str,
        *,
        category_override: UserFieldEdit[str] = UNCHANGED,
        note: UserFieldEdit[str] = UNCHANGED,
        verified: UserFieldEdit[bool] = UNCHANGED,
    ) -> StoredTransaction:
        with self._transaction(f"user edit {external_id}") as session:
            row = _select_row(session, account_id, external_id, lock=True)
            if row is None:
                raise TransactionNotFoundError(account_id, external_id)
            edited = apply_user_fields(
                to_stored(row),
                category_override=category_override,
                note=note,
                verified=verified,
            )
            row.category_override = edited.category_override
            row.note = edited.note
            row.verified = edited.verified
            row.category_source = edited.category_source
            row.updated_at = datetime.now(UTC)
            return edited

    def list_transactions(self, account_id: str) -> list[StoredTransaction]:
        with self._transaction(f"list {account_id}") as session:
            stmt = (
                select(BbTransaction)
                .where(BbTransaction.account_id == account_id)
                .order_by(BbTransaction.booked_at, BbTransaction.external_id)
            )
            return [to_stored(r) for r in session.execute(stmt).scalars()]

    def account_balance(self, account_id: str) -> Decimal:
        with self._transaction(f"balance {account_id}") as session:
            stmt = select(func.coalesce(func.sum(BbTransaction.amount), 0)).where(
                BbTransaction.account_id == account_id
            )
            total = session.execute(stmt).scalar_one()
        return quantize_amount(Decimal(str(total)))

    def record_import_run(self, run: ImportRun) -> None:
        with self._transaction(f"import run {run.account_id}") as session:
            session.add(
                BbImportRun(
                    account_id=run.account_id,
                    started_at=run.started_at,
                    finished_at=run.finished_at,
                    inserted=run.inserted,
                    updated=run.updated,
                    skipped=run.skipped,
                    failed=run.failed,
                    status=run.status,
                )
            )

    def last_import_run(self, account_id: str) -> ImportRun | None:
        with self._transaction(f"last import run {account_id}") as session:
            stmt = (
                select(BbImportRun)
                .where(BbImportRun.account_id == account_id)
                .order_by(BbImportRun.finished_at.desc(), BbImportRun.id.desc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return None
            return ImportRun(
                account_id=row.account_id,
                started_at=_as_utc(row.started_at),
                finished_at=_as_utc(row.finished_at),
                inserted=row.inserted,
                updated=row.updated,
                skipped=row.skipped,
                failed=row.failed,
                status=row.status,
            )


def create_schema(*, database_url: str | None = None) -> None:
    """Create all tables directly from ORM metadata (local SQLite/dev only).

    Production databases are migrated with Alembic (``libs/db/alembic``).
    """

    engine = get_engine(database_url=database_url)
    Base.metadata.create_all(bind=engine)
    logger.info("Created schema on %s", engine.url.render_as_string(hide_password=True))


__all__ = ["SqlTransactionStore", "create_schema", "to_stored"]
