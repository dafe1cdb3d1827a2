"""Public API for the ``better_budget`` package.

Stable import surface used by the CLI, the HTTP service and library callers.
Heavy dependencies (SQLAlchemy) are imported lazily inside :func:`open_store`
so in-memory use does not pay for them.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, timedelta

from .catalog import BankCatalog, default_catalog
from .errors import UnknownAccountError
from .generator import GeneratedTransactions, generate, parse_day
from .ids import derive_external_id
from .models import BankCatalogEntry, ImportResult, MockAccount
from .reconcile import AccountValidator, IncomingRecord, reconcile
from .storage import InMemoryTransactionStore, TransactionStore

DEFAULT_WINDOW_DAYS = 90


def list_banks(catalog: BankCatalog | None = None) -> Sequence[BankCatalogEntry]:
    return (catalog or default_catalog()).list_banks()


def list_accounts(bank_id: str, catalog: BankCatalog | None = None) -> Sequence[MockAccount]:
    return (catalog or default_catalog()).list_accounts(bank_id)


def default_window(
    from_date: date | datetime | str | None,
    to_date: date | datetime | str | None,
    *,
    today: date | None = None,
) -> tuple[date, date]:
    """Resolve optional bounds to a concrete range.

    A missing ``to_date`` means today (UTC); a missing ``from_date`` means
    ``DEFAULT_WINDOW_DAYS`` days before ``to_date``. Range ordering is not
    checked here; :func:`~better_budget.generator.generate` does that.
    """

    end = parse_day(to_date, name="to_date") if to_date is not None else None
    if end is None:
        end = today or datetime.now(UTC).date()
    if from_date is not None:
        start = parse_day(from_date, name="from_date")
    else:
        start = end - timedelta(days=DEFAULT_WINDOW_DAYS)
    return start, end


def mock_transactions(
    account_id: str,
    from_date: date | datetime | str | None = None,
    to_date: date | datetime | str | None = None,
    *,
    seed: int | str | None = None,
    count: int | None = None,
    today: date | None = None,
) -> GeneratedTransactions:
    """Mock bank transaction feed for ``account_id`` (seeded by the account by default)."""

    start, end = default_window(from_date, to_date, today=today)
    return generate(account_id, seed, start, end, count)


def import_transactions(
    account_id: str,
    records: Iterable[IncomingRecord] | None = None,
    *,
    store: TransactionStore,
    catalog: AccountValidator | None = None,
    from_date: date | datetime | str | None = None,
    to_date: date | datetime | str | None = None,
    concurrency: int = 1,
    cancel_event: threading.Event | None = None,
    today: date | None = None,
) -> ImportResult:
    """Reconcile ``records`` into ``store``; pull from the mock feed when ``records`` is None.

    The account is validated before the mock feed is generated so an unknown
    account fails fast without generating anything.
    """

    validator = catalog if catalog is not None else default_catalog()
    if records is None:
        if not validator.is_account_valid(account_id):
            raise UnknownAccountError(account_id)
        records = mock_transactions(account_id, from_date, to_date, today=today)
    return reconcile(
        account_id,
        records,
        store=store,
        catalog=validator,
        concurrency=concurrency,
        cancel_event=cancel_event,
    )


def open_store(database_url: str | None) -> TransactionStore:
    """Return a SQL store for ``database_url`` or an in-memory store when it is empty."""

    if not database_url:
        return InMemoryTransactionStore()
    from .persistence import SqlTransactionStore

    return SqlTransactionStore(database_url=database_url)


__all__ = [
    "DEFAULT_WINDOW_DAYS",
    "default_window",
    "derive_external_id",
    "generate",
    "import_transactions",
    "list_accounts",
    "list_banks",
    "mock_transactions",
    "open_store",
    "reconcile",
]
