# ruff: noqa: E402, I001
import sys
import threading
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `better_budget` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from better_budget.catalog import BankCatalog  # noqa: E402
from better_budget.errors import (  # noqa: E402
    ConcurrentWriteError,
    StorageError,
    UnknownAccountError,
)
from better_budget.generator import generate  # noqa: E402
from better_budget.reconcile import dedupe_by_external_id, reconcile  # noqa: E402
from better_budget.storage import InMemoryTransactionStore  # noqa: E402

ACCOUNT = "demo-bank-003-checking-001"
CATALOG = BankCatalog()


# ---- Helpers -----------------------------------------------------------------


def _records(n_days: int = 10, seed: int | str | None = None):
    start = "2025-01-01"
    end = f"2025-01-{n_days:02d}"
    return list(generate(ACCOUNT, seed, start, end))


def _raw(external_id: str, amount: str, **overrides):
    data = {
        "external_id": external_id,
        "date": "2025-02-01T09:00:00Z",
        "amount": amount,
        "currency": "EUR",
        "description": "Cafe Milano Berlin",
        "category": "Food",
    }
    data.update(overrides)
    return data


def _run(records, store, **kwargs):
    return reconcile(ACCOUNT, records, store=store, catalog=CATALOG, **kwargs)


class _UntouchableStore:
    def __getattr__(self, name):
        raise AssertionError(f"store accessed: {name}")


class _FlakyStore(InMemoryTransactionStore):
    """Fails writes for selected external IDs with a given storage error."""

    def __init__(self, failing, *, error=StorageError, times=None):
        super().__init__()
        self.failing = set(failing)
        self.error = error
        self.remaining = {eid: times for eid in self.failing}

    @contextmanager
    def write_scope(self, account_id, external_id):
        if external_id in self.failing:
            left = self.remaining[external_id]
            if left is None or left > 0:
                if left is not None:
                    self.remaining[external_id] = left - 1
                raise self.error(f"write failed for {external_id}")
        with super().write_scope(account_id, external_id) as writer:
            yield writer


# ---- Idempotence -------------------------------------------------------------


def test_second_import_is_a_no_op():
    store = InMemoryTransactionStore()
    records = _records(10)

    first = _run(records, store)
    assert (first.inserted, first.updated, first.skipped) == (10, 0, 0)
    assert first.failures == []

    second = _run(records, store)
    assert (second.inserted, second.updated, second.skipped) == (0, 0, 10)
    assert len(store) == 10


def test_raw_json_and_models_are_interchangeable():
    store = InMemoryTransactionStore()
    records = _records(5)
    _run(records, store)

    again = _run([r.to_json_dict() for r in records], store)
    assert (again.inserted, again.updated, again.skipped) == (0, 0, 5)


def test_changed_sourced_field_updates_in_place():
    store = InMemoryTransactionStore()
    records = _records(5)
    _run(records, store)

    changed = records[2].to_json_dict()
    changed["amount"] = "-1.00"
    changed["type"] = "expense"
    batch = [r.to_json_dict() for r in records]
    batch[2] = changed

    result = _run(batch, store)
    assert (result.inserted, result.updated, result.skipped) == (0, 1, 4)
    assert store.lookup_by_external_id(ACCOUNT, changed["external_id"]).record.amount == Decimal(
        "-1.00"
    )
    assert len(store) == 5


# ---- User-owned fields -------------------------------------------------------


def test_user_fields_survive_reimport():
    store = InMemoryTransactionStore()
    _run([_raw("t-1", "-4.20")], store)
    store.set_user_fields(
        ACCOUNT, "t-1", category_override="Coffee", note="with Sam", verified=True
    )

    result = _run([_raw("t-1", "-4.80", description="Cafe Milano (corrected)")], store)
    assert result.updated == 1

    row = store.lookup_by_external_id(ACCOUNT, "t-1")
    assert row.record.amount == Decimal("-4.80")
    assert row.record.description == "Cafe Milano (corrected)"
    assert row.category_override == "Coffee"
    assert row.note == "with Sam"
    assert row.verified is True
    assert row.category_source == "manual"
    assert row.effective_category == "Coffee"


# ---- Deduplication -----------------------------------------------------------


def test_duplicate_ids_in_one_batch_last_wins():
    store = InMemoryTransactionStore()
    result = _run([_raw("dup", "-1.00"), _raw("other", "-3.00"), _raw("dup", "-2.00")], store)

    assert result.inserted == 2
    assert result.failures == []
    assert store.lookup_by_external_id(ACCOUNT, "dup").record.amount == Decimal("-2.00")


def test_dedupe_keeps_first_position_of_last_value():
    unique, failures = dedupe_by_external_id(
        [_raw("a", "-1"), _raw("b", "-1"), _raw("a", "-9"), {"amount": "-1"}]
    )
    assert [u["external_id"] for u in unique] == ["a", "b"]
    assert unique[0]["amount"] == "-9"
    assert len(failures) == 1
    assert failures[0].external_id is None


# ---- Failure isolation -------------------------------------------------------


def test_malformed_records_do_not_abort_the_batch():
    store = InMemoryTransactionStore()
    batch = [
        _raw("good-1", "-1.00"),
        _raw("bad-1", "-1.00", date="not a date"),
        _raw("bad-2", "-1.00", type="income"),
        {"amount": "-1.00"},
        _raw("good-2", "5.00"),
    ]

    result = _run(batch, store)
    assert result.inserted == 2
    assert len(result.failures) == 3
    assert {f.external_id for f in result.failures} == {"bad-1", "bad-2", None}
    assert all(f.error == "MalformedRecordError" for f in result.failures)
    assert result.status == "partial"
    assert not result.storage_unavailable


def test_storage_error_is_isolated_to_its_record():
    records = _records(6)
    broken = records[3].external_id
    store = _FlakyStore({broken})

    result = _run(records, store)
    assert result.inserted == 5
    assert [(f.external_id, f.error) for f in result.failures] == [(broken, "StorageError")]
    assert store.lookup_by_external_id(ACCOUNT, broken) is None
    assert not result.storage_unavailable


def test_every_record_failing_in_storage_marks_storage_unavailable():
    records = _records(3)
    store = _FlakyStore({r.external_id for r in records})

    result = _run(records, store)
    assert result.committed == 0
    assert len(result.failures) == 3
    assert result.storage_unavailable


def test_concurrent_write_conflict_is_retried_once():
    records = _records(3)
    store = _FlakyStore({records[0].external_id}, error=ConcurrentWriteError, times=1)

    result = _run(records, store)
    assert result.inserted == 3
    assert result.failures == []


def test_persistent_write_conflict_becomes_a_failure():
    records = _records(3)
    store = _FlakyStore({records[0].external_id}, error=ConcurrentWriteError)

    result = _run(records, store)
    assert result.inserted == 2
    assert [f.error for f in result.failures] == ["ConcurrentWriteError"]


def test_unknown_account_fails_before_storage_access():
    with pytest.raises(UnknownAccountError):
        reconcile("acc-1", _records(3), store=_UntouchableStore(), catalog=CATALOG)


def test_failure_to_record_import_run_does_not_fail_import():
    class _NoHistoryStore(InMemoryTransactionStore):
        def record_import_run(self, run):
            raise StorageError("history table missing")

    store = _NoHistoryStore()
    result = _run(_records(2), store)
    assert result.inserted == 2


# ---- Concurrency and cancellation --------------------------------------------


def test_parallel_import_is_idempotent():
    store = InMemoryTransactionStore()
    records = list(generate(ACCOUNT, 5, "2025-01-01", "2025-01-10", 60))

    first = _run(records, store, concurrency=4)
    assert first.inserted == 60
    assert len(store) == 60

    second = _run(records, store, concurrency=4)
    assert (second.inserted, second.updated, second.skipped) == (0, 0, 60)


def test_cancel_before_start_attempts_nothing():
    store = InMemoryTransactionStore()
    cancel = threading.Event()
    cancel.set()

    result = _run(_records(5), store, cancel_event=cancel)
    assert result.cancelled
    assert result.committed == 0
    assert len(store) == 0
    assert store.last_import_run(ACCOUNT).status == "cancelled"


def test_cancel_midway_keeps_committed_writes():
    cancel = threading.Event()

    class _CancellingStore(InMemoryTransactionStore):
        writes = 0

        @contextmanager
        def write_scope(self, account_id, external_id):
            with super().write_scope(account_id, external_id) as writer:
                yield writer
            self.writes += 1
            if self.writes == 3:
                cancel.set()

    store = _CancellingStore()
    result = _run(_records(10), store, cancel_event=cancel)

    assert result.cancelled
    assert result.inserted == 3
    assert len(store) == 3
    assert result.status == "cancelled"


# ---- History -----------------------------------------------------------------


def test_import_run_is_recorded():
    store = InMemoryTransactionStore()
    assert store.last_import_run(ACCOUNT) is None

    _run(_records(4), store)
    _run(_records(4), store)

    run = store.last_import_run(ACCOUNT)
    assert (run.inserted, run.updated, run.skipped, run.failed) == (0, 0, 4, 0)
    assert run.status == "succeeded"
    assert run.started_at <= run.finished_at


def test_user_edit_then_unchanged_reimport_is_skipped():
    store = InMemoryTransactionStore()
    records = _records(5)
    _run(records, store)
    target = records[1].external_id
    store.set_user_fields(ACCOUNT, target, category_override="Gifts", note="bday", verified=True)

    result = _run(records, store)
    assert (result.inserted, result.updated, result.skipped) == (0, 0, 5)
    row = store.lookup_by_external_id(ACCOUNT, target)
    assert (row.category_override, row.note, row.verified) == ("Gifts", "bday", True)
    assert row.effective_category == "Gifts"


def test_unexpected_store_error_is_isolated_to_its_record():
    records = _records(5)
    broken = records[2].external_id

    class _DiskFullStore(InMemoryTransactionStore):
        @contextmanager
        def write_scope(self, account_id, external_id):
            if external_id == broken:
                raise OSError("disk full")
            with super().write_scope(account_id, external_id) as writer:
                yield writer

    store = _DiskFullStore()
    result = _run(records, store)

    assert result.inserted == 4
    assert [(f.external_id, f.error) for f in result.failures] == [(broken, "OSError")]
    assert result.failures[0].reason == "disk full"
    assert len(store) == 4
    assert not result.storage_unavailable
    run = store.last_import_run(ACCOUNT)
    assert (run.inserted, run.failed, run.status) == (4, 1, "partial")


def test_unexpected_error_in_parallel_import_keeps_other_records():
    records = list(generate(ACCOUNT, 9, "2025-01-01", "2025-01-05", 20))
    broken = {records[3].external_id, records[11].external_id}

    class _BuggyStore(InMemoryTransactionStore):
        @contextmanager
        def write_scope(self, account_id, external_id):
            with super().write_scope(account_id, external_id) as writer:
                if external_id in broken:
                    raise RuntimeError("bad row")
                yield writer

    store = _BuggyStore()
    result = _run(records, store, concurrency=4)
    assert result.inserted == 18
    assert {f.external_id for f in result.failures} == broken
    assert all(f.error == "RuntimeError" for f in result.failures)


def test_record_without_category_is_categorized_from_description():
    store = InMemoryTransactionStore()
    batch = [
        _raw("c-1", "-42.10", description="REWE SAGT DANKE", category=None),
        _raw("c-2", "3100.00", description="GEHALT/LOHN"),
    ]
    del batch[1]["category"]

    result = _run(batch, store)
    assert result.inserted == 2
    assert result.failures == []
    assert store.lookup_by_external_id(ACCOUNT, "c-1").record.category == "Food"
    assert store.lookup_by_external_id(ACCOUNT, "c-2").record.category == "Salary"
