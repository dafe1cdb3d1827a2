"""Public interface for the ``better_budget`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
The HTTP app (``better_budget.server``) and the CLI (``better_budget.cli``) are
imported explicitly by their entrypoints.
"""

from .api import (
    default_window,
    import_transactions,
    list_accounts,
    list_banks,
    mock_transactions,
    open_store,
)
from .catalog import BankCatalog, default_catalog, is_account_valid
from .categories import category_for_description
from .errors import (
    BetterBudgetError,
    ConcurrentWriteError,
    InvalidRangeError,
    MalformedRecordError,
    StorageError,
    TransactionNotFoundError,
    UnknownAccountError,
    UnknownBankError,
)
from .generator import GeneratedTransactions, generate
from .ids import derive_external_id
from .models import (
    BankCatalogEntry,
    ImportFailure,
    ImportResult,
    ImportRun,
    MockAccount,
    StoredTransaction,
    TransactionRecord,
)
from .reconcile import reconcile
from .storage import InMemoryTransactionStore, TransactionStore

__all__ = [
    # API
    "default_window",
    "derive_external_id",
    "generate",
    "import_transactions",
    "is_account_valid",
    "list_accounts",
    "list_banks",
    "mock_transactions",
    "open_store",
    "reconcile",
    # Catalog / storage
    "BankCatalog",
    "category_for_description",
    "default_catalog",
    "InMemoryTransactionStore",
    "TransactionStore",
    # Models
    "BankCatalogEntry",
    "GeneratedTransactions",
    "ImportFailure",
    "ImportResult",
    "ImportRun",
    "MockAccount",
    "StoredTransaction",
    "TransactionRecord",
    # Errors
    "BetterBudgetError",
    "ConcurrentWriteError",
    "InvalidRangeError",
    "MalformedRecordError",
    "StorageError",
    "TransactionNotFoundError",
    "UnknownAccountError",
    "UnknownBankError",
]
