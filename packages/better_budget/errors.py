"""Exception hierarchy for ``better_budget``.

Two families live here:

- Caller/precondition errors (``InvalidRangeError``, ``UnknownAccountError``,
  ``UnknownBankError``) abort the whole operation and surface to the caller.
- Per-record errors (``MalformedRecordError``, ``StorageError``) are collected
  by the reconciler into ``ImportResult.failures`` and never abort a batch.
"""

from __future__ import annotations


class BetterBudgetError(Exception):
    """Base class for all package errors."""


class InvalidRangeError(BetterBudgetError, ValueError):
    """A date range is malformed (unparsable bound or ``from_date > to_date``)."""


class UnknownAccountError(BetterBudgetError, LookupError):
    """The account is not present in the bank catalog."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"unknown account: {account_id!r}")
        self.account_id = account_id


class UnknownBankError(BetterBudgetError, LookupError):
    """The bank is not present in the bank catalog."""

    def __init__(self, bank_id: str) -> None:
        super().__init__(f"unknown bank: {bank_id!r}")
        self.bank_id = bank_id


class TransactionNotFoundError(BetterBudgetError, LookupError):
    """No stored transaction exists for the given account and external ID."""

    def __init__(self, account_id: str, external_id: str) -> None:
        super().__init__(f"no transaction {external_id!r} for account {account_id!r}")
        self.account_id = account_id
        self.external_id = external_id


class MalformedRecordError(BetterBudgetError, ValueError):
    """An incoming transaction record failed schema validation."""

    def __init__(self, message: str, *, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class StorageError(BetterBudgetError):
    """Reading or writing a single record in the transaction store failed."""


class ConcurrentWriteError(StorageError):
    """Another writer committed the same external ID first; safe to retry."""


__all__ = [
    "BetterBudgetError",
    "ConcurrentWriteError",
    "InvalidRangeError",
    "MalformedRecordError",
    "StorageError",
    "TransactionNotFoundError",
    "UnknownAccountError",
    "UnknownBankError",
]
