"""Data models and type aliases for ``better_budget``.

Transaction records are pydantic models so that the same validation runs for
generated mock data, JSON posted to the import endpoint, and rows loaded back
from the database. Result/bookkeeping types are plain dataclasses.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .categories import category_for_description

# ---------------------------------------------------------------------------
# Transaction records
# ---------------------------------------------------------------------------

TransactionType = Literal["income", "expense"]

type RawRecord = Mapping[str, Any]
"""An unvalidated transaction payload (e.g. one element of a JSON batch)."""

# Fields whose value originates from the bank feed; refreshed on re-import.
SOURCED_FIELDS: tuple[str, ...] = ("date", "amount", "currency", "description", "category", "type")

# Fields set by the user; the importer never writes them.
USER_OWNED_FIELDS: tuple[str, ...] = ("category_override", "note", "verified")

_CENTS = Decimal("0.01")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def type_for_amount(amount: Decimal) -> TransactionType:
    return "income" if amount > 0 else "expense"


class TransactionRecord(BaseModel):
    """A single bank transaction as delivered by the (mock) provider.

    ``type`` may be omitted on input, in which case it is derived from the
    sign of ``amount``. When provided it must agree with the sign:
    ``type == "income"`` iff ``amount > 0``.

    A missing or blank ``category`` is derived from ``description`` with
    :func:`better_budget.categories.category_for_description`.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    external_id: str = Field(min_length=1)
    date: datetime
    amount: Decimal
    currency: str
    description: str = ""
    category: str = Field(min_length=1)
    type: TransactionType

    @model_validator(mode="before")
    @classmethod
    def _derive_missing(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        category = data.get("category")
        needs_type = data.get("type") is None
        needs_category = category is None or (isinstance(category, str) and not category.strip())
        if not (needs_type or needs_category):
            return data
        try:
            amount = Decimal(str(data.get("amount")))
        except (InvalidOperation, ValueError):
            # Leave the fields missing; the amount error is reported instead.
            return data
        if not amount.is_finite():
            return data
        kind = type_for_amount(amount)
        derived = dict(data)
        if needs_type:
            derived["type"] = kind
        if needs_category:
            derived["category"] = category_for_description(
                str(data.get("description") or ""), is_expense=kind == "expense"
            )
        return derived

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @field_validator("amount")
    @classmethod
    def _normalize_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be a finite number")
        return quantize_amount(v)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, v: str) -> str:
        code = v.upper()
        if not _CURRENCY_RE.match(code):
            raise ValueError("currency must be a three-letter ISO-4217 code")
        return code

    @model_validator(mode="after")
    def _type_matches_sign(self) -> TransactionRecord:
        if self.type != type_for_amount(self.amount):
            raise ValueError(
                f"type {self.type!r} is inconsistent with amount {self.amount} "
                "(income iff amount > 0)"
            )
        return self

    def sourced_values(self) -> tuple[Any, ...]:
        """Return the sourced fields in :data:`SOURCED_FIELDS` order."""

        return tuple(getattr(self, name) for name in SOURCED_FIELDS)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass(frozen=True, slots=True)
class StoredTransaction:
    """A persisted transaction: the sourced record plus user-owned state."""

    account_id: str
    record: TransactionRecord
    category_override: str | None = None
    note: str | None = None
    verified: bool = False
    # "import" until the user overrides the category, then "manual".
    category_source: str = "import"

    @property
    def external_id(self) -> str:
        return self.record.external_id

    @property
    def effective_category(self) -> str:
        return self.category_override or self.record.category

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            **self.record.to_json_dict(),
            "category_override": self.category_override,
            "note": self.note,
            "verified": self.verified,
            "category_source": self.category_source,
            "effective_category": self.effective_category,
        }


# ---------------------------------------------------------------------------
# Import bookkeeping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImportFailure:
    """A record that could not be applied.

    ``error`` is the exception class name (``MalformedRecordError`` or a
    ``StorageError`` subclass) so API clients can branch without parsing
    ``reason``.
    """

    external_id: str | None
    reason: str
    error: str

    def to_json_dict(self) -> dict[str, Any]:
        return {"external_id": self.external_id, "reason": self.reason, "error": self.error}


_STORAGE_ERRORS = frozenset({"StorageError", "ConcurrentWriteError"})


@dataclass(slots=True)
class ImportResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failures: list[ImportFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def committed(self) -> int:
        return self.inserted + self.updated

    @property
    def storage_unavailable(self) -> bool:
        """True when every attempted record failed inside the store."""

        return (
            bool(self.failures)
            and self.inserted + self.updated + self.skipped == 0
            and all(f.error in _STORAGE_ERRORS for f in self.failures)
        )

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        return "partial" if self.failures else "succeeded"

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failures": [f.to_json_dict() for f in self.failures],
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True, slots=True)
class ImportRun:
    """One completed (or cancelled) reconcile call, kept as import history."""

    account_id: str
    started_at: datetime
    finished_at: datetime
    inserted: int
    updated: int
    skipped: int
    failed: int
    status: str

    @classmethod
    def from_result(
        cls,
        account_id: str,
        result: ImportResult,
        *,
        started_at: datetime,
        finished_at: datetime,
    ) -> ImportRun:
        return cls(
            account_id=account_id,
            started_at=started_at,
            finished_at=finished_at,
            inserted=result.inserted,
            updated=result.updated,
            skipped=result.skipped,
            failed=len(result.failures),
            status=result.status,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "status": self.status,
        }


# ---------------------------------------------------------------------------
# Bank catalog
# ---------------------------------------------------------------------------


class BankCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    bic: str
    country: str
    status: Literal["available", "unavailable"] = "available"


class MockAccount(BaseModel):
    """A mock bank account (PSD2 account-information shape, flattened)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    account_id: str
    bank_id: str
    iban: str
    name: str
    account_type: Literal["checking", "savings", "credit"]
    currency: str = "EUR"
    balance: Decimal


__all__ = [
    "SOURCED_FIELDS",
    "USER_OWNED_FIELDS",
    "BankCatalogEntry",
    "ImportFailure",
    "ImportResult",
    "ImportRun",
    "MockAccount",
    "RawRecord",
    "StoredTransaction",
    "TransactionRecord",
    "TransactionType",
    "quantize_amount",
    "type_for_amount",
]
