"""Static directory of connectable mock banks and their accounts.

Mirrors a PSD2 ASPSP directory: a fixed list of banks, each with a fixed set
of account templates. Account IDs follow ``{bank_id}-{type}-{nnn}`` and
IBANs/balances are derived deterministically from the account's seed, so the
catalog is identical on every process.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .errors import UnknownBankError
from .models import BankCatalogEntry, MockAccount

MOCK_BANKS: tuple[BankCatalogEntry, ...] = (
    BankCatalogEntry(
        id="sparkasse-berlin-001",
        name="Sparkasse Berlin",
        bic="BELADEBEXXX",
        country="DE",
    ),
    BankCatalogEntry(
        id="volksbank-mitte-002",
        name="Volksbank Mitte",
        bic="GENODEF1V04",
        country="DE",
    ),
    BankCatalogEntry(
        id="demo-bank-003",
        name="Demo Bank International",
        bic="DEMOBANK1",
        country="DE",
    ),
)

# (display name, account type) per bank, in account-number order.
ACCOUNT_TEMPLATES: dict[str, tuple[tuple[str, str], ...]] = {
    "sparkasse-berlin-001": (("Girokonto", "checking"), ("Sparkonto Plus", "savings")),
    "volksbank-mitte-002": (
        ("Gehaltskonto", "checking"),
        ("Tagesgeldkonto", "savings"),
        ("Kreditkarte", "credit"),
    ),
    "demo-bank-003": (("Main Account", "checking"), ("Savings Account", "savings")),
}

# Balance ranges in whole euros: (base, span). Credit balances are negative.
_BALANCE_RANGES: dict[str, tuple[int, int]] = {
    "checking": (500, 4500),
    "savings": (1000, 14000),
    "credit": (0, 2000),
}


def _hash_int(text: str, modulus: int) -> int:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % modulus


def mock_iban(seed: str) -> str:
    """German-style mock IBAN: ``DE`` + 2 check digits + 8-digit BLZ + 10-digit account."""

    check = _hash_int(f"{seed}-check", 100)
    bank_code = _hash_int(f"{seed}-bank", 10**8)
    account_no = _hash_int(f"{seed}-account", 10**10)
    return f"DE{check:02d}{bank_code:08d}{account_no:010d}"


def _mock_balance(seed: str, account_type: str) -> Decimal:
    base, span = _BALANCE_RANGES[account_type]
    whole = _hash_int(f"{seed}-bal", span)
    cents = _hash_int(f"{seed}-cents", 100)
    if account_type == "credit":
        return -Decimal(f"{whole}.{cents:02d}")
    return Decimal(f"{base + whole}.{cents:02d}")


class BankCatalog:
    """Queryable view over a fixed set of banks.

    ``banks`` defaults to :data:`MOCK_BANKS`; tests pass a custom list (for
    example with an ``unavailable`` bank).
    """

    def __init__(
        self,
        banks: Iterable[BankCatalogEntry] | None = None,
        *,
        account_templates: dict[str, tuple[tuple[str, str], ...]] | None = None,
    ) -> None:
        self._banks: tuple[BankCatalogEntry, ...] = tuple(MOCK_BANKS if banks is None else banks)
        self._templates = ACCOUNT_TEMPLATES if account_templates is None else account_templates
        self._by_id = {b.id: b for b in self._banks}
        self._accounts: dict[str, tuple[MockAccount, ...]] = {
            b.id: self._build_accounts(b.id) for b in self._banks
        }
        self._valid_account_ids = frozenset(
            a.account_id
            for bank in self._banks
            if bank.status == "available"
            for a in self._accounts[bank.id]
        )

    def _build_accounts(self, bank_id: str) -> tuple[MockAccount, ...]:
        accounts: list[MockAccount] = []
        for i, (name, account_type) in enumerate(self._templates.get(bank_id, ())):
            seed = f"{bank_id}-{account_type}-{i}"
            accounts.append(
                MockAccount(
                    account_id=f"{bank_id}-{account_type}-{i + 1:03d}",
                    bank_id=bank_id,
                    iban=mock_iban(seed),
                    name=name,
                    account_type=account_type,  # type: ignore[arg-type]
                    balance=_mock_balance(seed, account_type),
                )
            )
        return tuple(accounts)

    def list_banks(self) -> Sequence[BankCatalogEntry]:
        return self._banks

    def get_bank(self, bank_id: str) -> BankCatalogEntry:
        try:
            return self._by_id[bank_id]
        except KeyError:
            raise UnknownBankError(bank_id) from None

    def list_accounts(self, bank_id: str) -> Sequence[MockAccount]:
        self.get_bank(bank_id)
        return self._accounts[bank_id]

    def is_account_valid(self, account_id: str) -> bool:
        """True iff ``account_id`` belongs to an available bank in this catalog."""

        return account_id in self._valid_account_ids


_DEFAULT_CATALOG: BankCatalog | None = None


def default_catalog() -> BankCatalog:
    global _DEFAULT_CATALOG
    if _DEFAULT_CATALOG is None:
        _DEFAULT_CATALOG = BankCatalog()
    return _DEFAULT_CATALOG


def list_banks() -> Sequence[BankCatalogEntry]:
    return default_catalog().list_banks()


def is_account_valid(account_id: str) -> bool:
    return default_catalog().is_account_valid(account_id)


__all__ = [
    "ACCOUNT_TEMPLATES",
    "MOCK_BANKS",
    "BankCatalog",
    "default_catalog",
    "is_account_valid",
    "list_banks",
    "mock_iban",
]
