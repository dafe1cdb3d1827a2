"""Idempotent import of externally sourced transactions.

:func:`reconcile` upserts a batch of records into a
:class:`~better_budget.storage.TransactionStore` keyed by
``(account_id, external_id)``:

- not stored yet -> insert (``inserted``)
- stored, some sourced field differs -> overwrite sourced fields only
  (``updated``); user-owned fields are never touched
- stored and identical -> no write (``skipped``)

Error policy
------------
- ``UnknownAccountError`` is raised before any storage access.
- ``MalformedRecordError`` and ``StorageError`` are per-record: they are
  collected into ``ImportResult.failures`` and the batch continues. Any other
  exception raised while applying one record is logged with its traceback and
  collected the same way, under its own class name.
- ``ConcurrentWriteError`` (another writer created the row first) is retried
  once against the now-existing row.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Protocol

from pydantic import ValidationError

from .catalog import default_catalog
from .errors import (
    ConcurrentWriteError,
    MalformedRecordError,
    StorageError,
    UnknownAccountError,
)
from .logging_setup import get_logger
from .models import ImportFailure, ImportResult, ImportRun, RawRecord, TransactionRecord
from .pmap import p_map
from .storage import TransactionStore

logger = get_logger("better_budget.reconcile")

_MAX_ATTEMPTS = 2

type IncomingRecord = TransactionRecord | RawRecord
type OutcomeKind = Literal["inserted", "updated", "skipped", "failed"]


class AccountValidator(Protocol):
    def is_account_valid(self, account_id: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class _Outcome:
    kind: OutcomeKind
    failure: ImportFailure | None = None


def external_id_of(item: object) -> str | None:
    """Best-effort external ID of an incoming item (``None`` when absent/blank)."""

    if isinstance(item, TransactionRecord):
        return item.external_id
    if isinstance(item, Mapping):
        raw = item.get("external_id")
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
    return None


def dedupe_by_external_id(
    records: Iterable[IncomingRecord],
) -> tuple[list[IncomingRecord], list[ImportFailure]]:
    """Collapse repeated external IDs, keeping the last occurrence.

    Items without an extractable external ID cannot be keyed; they are
    returned as failures instead.
    """

    by_id: dict[str, IncomingRecord] = {}
    failures: list[ImportFailure] = []
    for item in records:
        eid = external_id_of(item)
        if eid is None:
            failures.append(
                ImportFailure(
                    external_id=None,
                    reason="record has no external_id",
                    error=MalformedRecordError.__name__,
                )
            )
            continue
        by_id[eid] = item
    return list(by_id.values()), failures


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def coerce_record(item: IncomingRecord) -> TransactionRecord:
    """Validate ``item`` into a :class:`TransactionRecord` or raise ``MalformedRecordError``."""

    if isinstance(item, TransactionRecord):
        return item
    if not isinstance(item, Mapping):
        raise MalformedRecordError(f"expected a mapping, got {type(item).__name__}")
    try:
        return TransactionRecord.model_validate(dict(item))
    except ValidationError as e:
        raise MalformedRecordError(
            _describe_validation_error(e), external_id=external_id_of(item)
        ) from e


def _apply(store: TransactionStore, account_id: str, record: TransactionRecord) -> OutcomeKind:
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            with store.write_scope(account_id, record.external_id) as writer:
                existing = writer.lookup()
                if existing is None:
                    writer.insert(record)
                    return "inserted"
                if existing.record.sourced_values() == record.sourced_values():
                    return "skipped"
                writer.update(record)
                return "updated"
        except ConcurrentWriteError:
            if attempt == _MAX_ATTEMPTS:
                raise
            logger.info("Concurrent write on %s; retrying", record.external_id)
    raise AssertionError("unreachable")  # pragma: no cover


def reconcile(
    account_id: str,
    records: Iterable[IncomingRecord],
    *,
    store: TransactionStore,
    catalog: AccountValidator | None = None,
    concurrency: int = 1,
    cancel_event: threading.Event | None = None,
) -> ImportResult:
    """Upsert ``records`` for ``account_id`` and report what happened.

    Parameters
    ----------
    account_id:
        Catalog account the records belong to.
    records:
        ``TransactionRecord`` instances or raw mappings (e.g. decoded JSON).
        Repeated external IDs are collapsed before storage access; the last
        occurrence wins.
    store:
        Transaction store to write into.
    catalog:
        Account validator; defaults to the static mock bank catalog.
    concurrency:
        Number of records applied in parallel. Ordering between different
        external IDs is not guaranteed when greater than 1.
    cancel_event:
        When set during the call, records not yet started are not attempted
        and the result is marked ``cancelled``; counts cover committed work
        only.

    Returns
    -------
    ImportResult
        ``inserted``/``updated``/``skipped`` counts plus per-record failures.
        Calling twice with the same input yields ``inserted=0, updated=0``
        on the second call.
    """

    validator = catalog if catalog is not None else default_catalog()
    if not validator.is_account_valid(account_id):
        raise UnknownAccountError(account_id)

    started_at = datetime.now(UTC)
    unique, failures = dedupe_by_external_id(records)
    result = ImportResult(failures=failures)

    def _one(item: IncomingRecord) -> _Outcome:
        try:
            record = coerce_record(item)
        except MalformedRecordError as e:
            return _Outcome(
                "failed",
                ImportFailure(external_id_of(item), str(e), MalformedRecordError.__name__),
            )
        try:
            return _Outcome(_apply(store, account_id, record))
        except StorageError as e:
            logger.warning("Storage failure for %s/%s: %s", account_id, record.external_id, e)
            return _Outcome("failed", ImportFailure(record.external_id, str(e), type(e).__name__))
        except Exception as e:  # noqa: BLE001
            # Anything else raised for one record still must not drop the batch.
            logger.exception("Unexpected failure for %s/%s", account_id, record.external_id)
            return _Outcome("failed", ImportFailure(record.external_id, str(e), type(e).__name__))

    outcomes: list[_Outcome] = p_map(
        unique, _one, concurrency=concurrency, cancel_event=cancel_event
    )
    for outcome in outcomes:
        if outcome.kind == "inserted":
            result.inserted += 1
        elif outcome.kind == "updated":
            result.updated += 1
        elif outcome.kind == "skipped":
            result.skipped += 1
        elif outcome.failure is not None:
            result.failures.append(outcome.failure)
    result.cancelled = len(outcomes) < len(unique)

    logger.info(
        "Import %s: inserted=%d updated=%d skipped=%d failed=%d%s",
        account_id,
        result.inserted,
        result.updated,
        result.skipped,
        len(result.failures),
        " (cancelled)" if result.cancelled else "",
    )

    run = ImportRun.from_result(
        account_id, result, started_at=started_at, finished_at=datetime.now(UTC)
    )
    try:
        store.record_import_run(run)
    except StorageError as e:
        logger.warning("Could not record import run for %s: %s", account_id, e)
    return result


__all__ = [
    "AccountValidator",
    "coerce_record",
    "dedupe_by_external_id",
    "external_id_of",
    "reconcile",
]
