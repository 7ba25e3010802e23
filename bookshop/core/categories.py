"""Suggested expense categories and the helper that normalises free-form input."""

EXPENSE_TYPE_FOOD = "Food"
EXPENSE_TYPE_RENT = "Rent"
EXPENSE_TYPE_FUEL = "Fuel"
EXPENSE_TYPE_UTILITIES = "Utilities"
EXPENSE_TYPE_STATIONERY = "Stationery"
EXPENSE_TYPE_TRANSPORT = "Transport"
EXPENSE_TYPE_MISC = "Misc"

# Shown as suggestions only. Any other non-blank category is stored as typed.
EXPENSE_TYPE_SUGGESTIONS = (
    EXPENSE_TYPE_FOOD,
    EXPENSE_TYPE_RENT,
    EXPENSE_TYPE_FUEL,
    EXPENSE_TYPE_UTILITIES,
    EXPENSE_TYPE_STATIONERY,
    EXPENSE_TYPE_TRANSPORT,
    EXPENSE_TYPE_MISC,
)


def normalize_expense_type(value: str | None) -> str:
    """Return the trimmed category, falling back to ``Misc`` when blank."""

    return (value or "").strip() or EXPENSE_TYPE_MISC


__all__ = [
    "EXPENSE_TYPE_FOOD",
    "EXPENSE_TYPE_FUEL",
    "EXPENSE_TYPE_MISC",
    "EXPENSE_TYPE_RENT",
    "EXPENSE_TYPE_STATIONERY",
    "EXPENSE_TYPE_SUGGESTIONS",
    "EXPENSE_TYPE_TRANSPORT",
    "EXPENSE_TYPE_UTILITIES",
    "normalize_expense_type",
]
