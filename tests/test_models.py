# ruff: noqa: E402, I001
import sys
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

# Make sure the workspace `packages/` dir is on sys.path so `better_budget` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from better_budget.models import (  # noqa: E402
    ImportFailure,
    ImportResult,
    StoredTransaction,
    TransactionRecord,
)


def _raw(**overrides):
    data = {
        "external_id": "txn-1",
        "date": "2025-01-01T10:00:00Z",
        "amount": "-12.50",
        "currency": "EUR",
        "description": "REWE SAGT DANKE",
        "category": "Food",
    }
    data.update(overrides)
    return data


def test_type_derived_from_amount_sign():
    assert TransactionRecord.model_validate(_raw()).type == "expense"
    assert TransactionRecord.model_validate(_raw(amount="100")).type == "income"
    assert TransactionRecord.model_validate(_raw(amount="0")).type == "expense"


def test_type_must_match_sign():
    with pytest.raises(ValidationError):
        TransactionRecord.model_validate(_raw(type="income"))


def test_normalization():
    rec = TransactionRecord.model_validate(
        _raw(amount="-12.345", currency="eur", date="2025-01-01T12:00:00+02:00")
    )
    assert rec.amount == Decimal("-12.35")
    assert rec.currency == "EUR"
    assert rec.date == datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
    assert rec.date.utcoffset() == timedelta(0)


def test_naive_dates_are_utc():
    rec = TransactionRecord.model_validate(_raw(date=datetime(2025, 1, 1, 8, 30)))
    assert rec.date.tzinfo is not None
    assert rec.date == datetime(2025, 1, 1, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "overrides",
    [
        {"currency": "EURO"},
        {"amount": "abc"},
        {"date": "not a date"},
        {"external_id": ""},
    ],
)
def test_invalid_records(overrides):
    with pytest.raises(ValidationError):
        TransactionRecord.model_validate(_raw(**overrides))


@pytest.mark.parametrize("category", [None, "", "   "])
def test_missing_category_is_derived_from_description(category):
    rec = TransactionRecord.model_validate(_raw(category=category))
    assert rec.category == "Food"

    data = _raw(amount="2900", description="GEHALT/LOHN")
    del data["category"]
    assert TransactionRecord.model_validate(data).category == "Salary"


def test_given_category_is_kept():
    rec = TransactionRecord.model_validate(_raw(category="Groceries"))
    assert rec.category == "Groceries"


def test_missing_category_with_bad_amount_is_still_invalid():
    with pytest.raises(ValidationError) as info:
        TransactionRecord.model_validate(_raw(category=None, amount="abc"))
    assert {e["loc"][0] for e in info.value.errors()} >= {"amount"}


def test_unknown_fields_are_ignored():
    rec = TransactionRecord.model_validate(_raw(merchant="REWE"))
    assert not hasattr(rec, "merchant")


def test_effective_category_prefers_override():
    rec = TransactionRecord.model_validate(_raw())
    assert StoredTransaction("a", rec).effective_category == "Food"
    overridden = StoredTransaction("a", rec, category_override="Groceries")
    assert overridden.effective_category == "Groceries"


def test_result_status_and_storage_unavailable():
    assert ImportResult(inserted=1).status == "succeeded"

    partial = ImportResult(inserted=1, failures=[ImportFailure("x", "boom", "StorageError")])
    assert partial.status == "partial"
    assert not partial.storage_unavailable

    down = ImportResult(failures=[ImportFailure("x", "boom", "StorageError")])
    assert down.storage_unavailable

    malformed = ImportResult(failures=[ImportFailure("x", "bad", "MalformedRecordError")])
    assert not malformed.storage_unavailable

    assert ImportResult(inserted=2, cancelled=True).status == "cancelled"
