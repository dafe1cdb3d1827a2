"""Deterministic mock transaction generator.

Every generated value is a pure function of ``(seed, slot index)`` and the
number of records placed on that day; nothing reads the clock or a random
source, so the same arguments produce identical records across calls and
process restarts.

Slots
-----
Records are placed in per-day slots: ``index = day.toordinal() * 100 +
position`` where ``position`` counts records already placed on that day.
Because the slot index depends on the calendar day rather than on the
requested window, overlapping windows reproduce the same records (and the
same external IDs) for the days they share, provided they place the same
number of records per day. Within a day, booking times ascend with
``position``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from .errors import InvalidRangeError
from .ids import Seed, derive_external_id
from .logging_setup import get_logger
from .models import TransactionRecord, type_for_amount

logger = get_logger("better_budget.generator")

MAX_PER_DAY = 100
MINUTES_PER_DAY = 24 * 60
DEFAULT_CURRENCY = "EUR"


@dataclass(frozen=True, slots=True)
class _Template:
    counterparty: str
    description: str
    category: str
    amount_min: int
    amount_max: int
    is_expense: bool


# Fixed lookup table; append-only. Reordering changes every generated record.
TEMPLATES: tuple[_Template, ...] = (
    _Template("REWE", "REWE SAGT DANKE", "Food", 15, 120, True),
    _Template("EDEKA", "EDEKA Markt", "Food", 10, 80, True),
    _Template("Lidl", "LIDL DIENSTLEISTUNG", "Food", 20, 100, True),
    _Template("Amazon", "AMAZON EU S.A R.L.", "Shopping", 15, 200, True),
    _Template("DB Vertrieb", "DB Vertrieb GmbH", "Transport", 20, 150, True),
    _Template("BVG", "BVG Abo Monatskarte", "Transport", 86, 86, True),
    _Template("Netflix", "NETFLIX.COM", "Entertainment", 13, 18, True),
    _Template("Spotify", "SPOTIFY AB", "Entertainment", 10, 15, True),
    _Template("Stadtwerke Berlin", "Stadtwerke Berlin Strom/Gas", "Utilities", 80, 150, True),
    _Template("Telekom", "Telekom Deutschland GmbH", "Utilities", 40, 60, True),
    _Template("DM Drogerie", "DM-DROGERIE MARKT", "Shopping", 10, 50, True),
    _Template("Cafe Milano", "Cafe Milano Berlin", "Food", 5, 25, True),
    _Template("Arbeitgeber GmbH", "GEHALT/LOHN", "Salary", 2500, 4500, False),
    _Template("Freelance Client", "Honorar Beratung", "Freelance", 500, 2000, False),
    _Template("Steueramt", "Steuererstattung", "Other", 200, 800, False),
)


def _draw(seed: Seed, index: int, purpose: str, modulus: int) -> int:
    """Map ``(seed, index, purpose)`` to an integer in ``[0, modulus)``."""

    payload = json.dumps(
        {"seed": str(seed), "index": index, "purpose": purpose},
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(payload.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % modulus


def parse_day(value: date | datetime | str, *, name: str = "date") -> date:
    """Coerce a date bound to a ``date``; raise ``InvalidRangeError`` when unparsable."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(s).date()
        except ValueError:
            raise InvalidRangeError(f"{name} is not an ISO-8601 date: {value!r}") from None
    raise InvalidRangeError(f"{name} must be a date or ISO-8601 string, got {type(value).__name__}")


def record_for_slot(seed: Seed, index: int, day: date, *, per_day: int = 1) -> TransactionRecord:
    """Build the transaction occupying slot ``index`` on ``day``.

    The day is split into ``per_day`` equal windows and the booking time is
    drawn inside the window of the slot's position, so records on one day
    come out in ascending time order.
    """

    template = TEMPLATES[_draw(seed, index, "template", len(TEMPLATES))]
    span = template.amount_max - template.amount_min + 1
    whole = template.amount_min + _draw(seed, index, "amount", span)
    cents = _draw(seed, index, "cents", 100)
    amount = Decimal(f"{whole}.{cents:02d}")
    if template.is_expense:
        amount = -amount
    width = MINUTES_PER_DAY // max(per_day, 1)
    minute = (index % MAX_PER_DAY) * width + _draw(seed, index, "minute", width)
    booked_at = datetime.combine(day, time(0), tzinfo=UTC) + timedelta(minutes=minute)
    return TransactionRecord(
        external_id=derive_external_id(seed, index),
        date=booked_at,
        amount=amount,
        currency=DEFAULT_CURRENCY,
        description=template.description,
        category=template.category,
        type=type_for_amount(amount),
    )


@dataclass(frozen=True, slots=True)
class GeneratedTransactions:
    """Lazy, finite and restartable sequence of generated records.

    Each iteration regenerates the records from scratch; iterating twice
    yields equal records in the same order (ascending by date).
    """

    account_id: str
    seed: Seed
    from_date: date
    to_date: date
    count: int

    @property
    def days(self) -> int:
        return (self.to_date - self.from_date).days + 1

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[TransactionRecord]:
        n_days = self.days
        prev_offset = -1
        position = 0
        for i in range(self.count):
            # Spread ``count`` records evenly over the days of the range.
            offset = i * n_days // self.count
            position = position + 1 if offset == prev_offset else 0
            prev_offset = offset
            day = self.from_date + timedelta(days=offset)
            index = day.toordinal() * MAX_PER_DAY + position
            yield record_for_slot(self.seed, index, day, per_day=self._per_day(offset))

    def _per_day(self, offset: int) -> int:
        # Records i with i * days // count == offset form one contiguous run.
        n_days = self.days

        def first(d: int) -> int:
            return -(-d * self.count // n_days)

        return first(offset + 1) - first(offset)

    def to_json_list(self) -> list[dict[str, object]]:
        return [r.to_json_dict() for r in self]


def generate(
    account_id: str,
    seed: Seed | None,
    from_date: date | datetime | str,
    to_date: date | datetime | str,
    count: int | None = None,
) -> GeneratedTransactions:
    """Return the deterministic mock transactions for an account and date range.

    Parameters
    ----------
    account_id:
        Account the records are generated for. Also the seed when ``seed`` is
        ``None``.
    seed:
        Any int or str. The same seed always yields the same records.
    from_date, to_date:
        Inclusive bounds as ``date``/``datetime`` or ISO-8601 strings.
        ``from_date > to_date`` raises :class:`InvalidRangeError`.
    count:
        Number of records. Defaults to one per day in the range. At most
        ``MAX_PER_DAY`` records are placed on a single day.
    """

    if not account_id or not account_id.strip():
        raise ValueError("account_id must be a non-empty string")
    start = parse_day(from_date, name="from_date")
    end = parse_day(to_date, name="to_date")
    if start > end:
        raise InvalidRangeError(f"from_date {start.isoformat()} is after to_date {end.isoformat()}")

    n_days = (end - start).days + 1
    if count is None:
        count = n_days
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ValueError("count must be a non-negative integer")
    if count > n_days * MAX_PER_DAY:
        raise ValueError(
            f"count {count} exceeds {MAX_PER_DAY} transactions per day over {n_days} days"
        )

    effective_seed: Seed = account_id if seed is None else seed
    logger.debug(
        "generate account=%s seed=%r range=%s..%s count=%d",
        account_id,
        effective_seed,
        start.isoformat(),
        end.isoformat(),
        count,
    )
    return GeneratedTransactions(
        account_id=account_id,
        seed=effective_seed,
        from_date=start,
        to_date=end,
        count=count,
    )


__all__ = [
    "DEFAULT_CURRENCY",
    "MAX_PER_DAY",
    "TEMPLATES",
    "GeneratedTransactions",
    "generate",
    "parse_day",
    "record_for_slot",
]
