"""Rule-based category fallback for provider records.

Bank feeds do not always carry a category. When a record arrives without one,
:func:`category_for_description` derives it from the booking text with a
small keyword table. The first matching rule wins; income and expenses use
separate tables because the same merchant text can mean different things on
either side (e.g. a tax refund vs. a tax payment).
"""

from __future__ import annotations

FALLBACK_CATEGORY = "Other"

# (category, keywords). Matched case-insensitively as substrings, in order.
_INCOME_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Salary", ("gehalt", "lohn")),
    ("Freelance", ("honorar", "freelance")),
)

_EXPENSE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Food", ("rewe", "edeka", "lidl", "cafe", "restaurant")),
    ("Shopping", ("amazon", "dm-drogerie")),
    # Trailing space keeps "db " from matching inside words.
    ("Transport", ("db ", "bvg")),
    ("Entertainment", ("netflix", "spotify")),
    ("Utilities", ("stadtwerke", "strom", "gas", "telekom")),
)


def category_for_description(description: str, *, is_expense: bool) -> str:
    """Return the category implied by ``description`` (``"Other"`` when none match)."""

    text = (description or "").lower()
    for category, keywords in _EXPENSE_RULES if is_expense else _INCOME_RULES:
        if any(k in text for k in keywords):
            return category
    return FALLBACK_CATEGORY


__all__ = ["FALLBACK_CATEGORY", "category_for_description"]
