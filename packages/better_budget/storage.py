"""Transaction store capability and its in-memory implementation.

The reconciler depends only on :class:`TransactionStore`. Writes go through
``write_scope(account_id, external_id)``, which holds the per-key writer lock
for the duration of a lookup-then-write sequence and commits on clean exit:

    with store.write_scope(account_id, external_id) as w:
        existing = w.lookup()
        if existing is None:
            w.insert(record)

Concrete stores:

- :class:`InMemoryTransactionStore` (this module): tests and DB-less runs.
- :class:`better_budget.persistence.SqlTransactionStore`: SQLAlchemy.
"""

from __future__ import annotations

import threading
import zlib
from collections.abc import Iterable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Protocol

from .errors import StorageError, TransactionNotFoundError
from .models import ImportRun, StoredTransaction, TransactionRecord, quantize_amount

type StoreKey = tuple[str, str]

# Number of writer locks shared by all keys of an in-memory store.
LOCK_STRIPES = 64


class _Unchanged:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "UNCHANGED"


# Default for user-field edits: leave the field as it is. ``None`` (or an
# empty string) clears ``category_override``/``note`` instead.
UNCHANGED = _Unchanged()

type UserFieldEdit[T] = T | None | _Unchanged


class RecordWriter(Protocol):
    """Lookup/insert/update for the single key held by a write scope."""

    def lookup(self) -> StoredTransaction | None: ...

    def insert(self, record: TransactionRecord) -> None: ...

    def update(self, record: TransactionRecord) -> None:
        """Overwrite sourced fields only; user-owned fields are left untouched."""
        ...


class TransactionStore(Protocol):
    def lookup_by_external_id(
        self, account_id: str, external_id: str
    ) -> StoredTransaction | None: ...

    def write_scope(
        self, account_id: str, external_id: str
    ) -> AbstractContextManager[RecordWriter]: ...

    def set_user_fields(
        self,
        account_id: str,
        external_id: str,
        *,
        category_override: UserFieldEdit[str] = UNCHANGED,
        note: UserFieldEdit[str] = UNCHANGED,
        verified: UserFieldEdit[bool] = UNCHANGED,
    ) -> StoredTransaction: ...

    def list_transactions(self, account_id: str) -> Sequence[StoredTransaction]: ...

    def account_balance(self, account_id: str) -> Decimal:
        """Sum of the stored amounts for ``account_id`` (``0.00`` when empty)."""
        ...

    def record_import_run(self, run: ImportRun) -> None: ...

    def last_import_run(self, account_id: str) -> ImportRun | None: ...


def _cleared(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def apply_user_fields(
    row: StoredTransaction,
    *,
    category_override: UserFieldEdit[str] = UNCHANGED,
    note: UserFieldEdit[str] = UNCHANGED,
    verified: UserFieldEdit[bool] = UNCHANGED,
) -> StoredTransaction:
    """Return ``row`` with the given user-owned fields applied.

    ``UNCHANGED`` leaves a field alone. ``None`` or a blank string clears
    ``category_override``/``note``; clearing the override hands the category
    back to the importer (``category_source = "import"``). ``verified=None``
    is treated as unchanged.
    """

    changes: dict[str, object] = {}
    if category_override is not UNCHANGED:
        override = _cleared(category_override)  # type: ignore[arg-type]
        changes["category_override"] = override
        changes["category_source"] = "import" if override is None else "manual"
    if note is not UNCHANGED:
        changes["note"] = _cleared(note)  # type: ignore[arg-type]
    if verified is not UNCHANGED and verified is not None:
        changes["verified"] = bool(verified)
    return replace(row, **changes) if changes else row


def sum_amounts(rows: Iterable[StoredTransaction]) -> Decimal:
    return quantize_amount(sum((r.record.amount for r in rows), Decimal("0")))


class _MemoryWriter:
    def __init__(self, store: InMemoryTransactionStore, key: StoreKey) -> None:
        self._store = store
        self._key = key
        self._pending: StoredTransaction | None = None

    def lookup(self) -> StoredTransaction | None:
        if self._pending is not None:
            return self._pending
        return self._store._rows.get(self._key)

    def insert(self, record: TransactionRecord) -> None:
        if self.lookup() is not None:
            raise StorageError(f"duplicate external_id {self._key[1]!r} for {self._key[0]!r}")
        self._pending = StoredTransaction(account_id=self._key[0], record=record)

    def update(self, record: TransactionRecord) -> None:
        existing = self.lookup()
        if existing is None:
            raise StorageError(f"no row for external_id {self._key[1]!r}")
        self._pending = replace(existing, record=record)


class InMemoryTransactionStore:
    """Dict-backed store serializing writers per ``(account_id, external_id)``.

    Keys share a fixed set of ``LOCK_STRIPES`` locks chosen by a stable hash,
    so two writers of the same key always contend on the same lock and the
    lock table never grows.
    """

    def __init__(self) -> None:
        self._rows: dict[StoreKey, StoredTransaction] = {}
        self._runs: list[ImportRun] = []
        self._guard = threading.Lock()
        self._stripes = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def _lock_for(self, key: StoreKey) -> threading.Lock:
        digest = zlib.crc32("\x1f".join(key).encode("utf-8"))
        return self._stripes[digest % LOCK_STRIPES]

    def lookup_by_external_id(self, account_id: str, external_id: str) -> StoredTransaction | None:
        return self._rows.get((account_id, external_id))

    @contextmanager
    def write_scope(self, account_id: str, external_id: str) -> Iterator[RecordWriter]:
        key = (account_id, external_id)
        with self._lock_for(key):
            writer = _MemoryWriter(self, key)
            yield writer
            # Commit only on clean exit; an exception discards the pending row.
            if writer._pending is not None:
                with self._guard:
                    self._rows[key] = writer._pending

    def set_user_fields(
        self,
        account_id: str,
        external_id: str,
        *,
        category_override: UserFieldEdit[str] = UNCHANGED,
        note: UserFieldEdit[str] = UNCHANGED,
        verified: UserFieldEdit[bool] = UNCHANGED,
    ) -> StoredTransaction:
        key = (account_id, external_id)
        with self._lock_for(key):
            row = self._rows.get(key)
            if row is None:
                raise TransactionNotFoundError(account_id, external_id)
            row = apply_user_fields(
                row, category_override=category_override, note=note, verified=verified
            )
            with self._guard:
                self._rows[key] = row
            return row

    def list_transactions(self, account_id: str) -> list[StoredTransaction]:
        with self._guard:
            rows = [r for (acc, _), r in self._rows.items() if acc == account_id]
        return sorted(rows, key=lambda r: (r.record.date, r.external_id))

    def account_balance(self, account_id: str) -> Decimal:
        with self._guard:
            rows = [r for (acc, _), r in self._rows.items() if acc == account_id]
        return sum_amounts(rows)

    def record_import_run(self, run: ImportRun) -> None:
        with self._guard:
            self._runs.append(run)

    def last_import_run(self, account_id: str) -> ImportRun | None:
        with self._guard:
            for run in reversed(self._runs):
                if run.account_id == account_id:
                    return run
        return None

    def __len__(self) -> int:
        return len(self._rows)


__all__ = [
    "LOCK_STRIPES",
    "UNCHANGED",
    "InMemoryTransactionStore",
    "RecordWriter",
    "TransactionStore",
    "UserFieldEdit",
    "apply_user_fields",
    "sum_amounts",
]
