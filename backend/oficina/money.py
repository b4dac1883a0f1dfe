"""
Ledger arithmetic.

All amounts are carried as integer cents. Conversion from user input and
formatting for display are the only places where decimal rounding happens;
sums, balances and differences are exact integer arithmetic.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from oficina.validation import ValidationError


# Maximum single amount: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999

CENTS = Decimal("0.01")

# Brazilian real notes and coins, in cents
DENOMINATIONS_CENTS = (20000, 10000, 5000, 2000, 1000, 500, 200, 100, 50, 25, 10, 5)


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a monetary amount")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        # repr() keeps the shortest round-tripping form (0.1 -> "0.1")
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip().replace("R$", "").replace(" ", "")
        if not text:
            raise ValidationError(f"{field} must be a monetary amount")
        if "," in text:
            # "1.234,56" -> "1234.56"
            text = text.replace(".", "").replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a monetary amount")
    else:
        raise ValidationError(f"{field} must be a monetary amount")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite amount")
    return amount


def to_cents(value: Any, field: str = "amount") -> int:
    """Convert a user-supplied amount (units, 2 decimals) to integer cents."""
    amount = _to_decimal(value, field).quantize(CENTS, rounding=ROUND_HALF_UP)
    cents = int(amount * 100)
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_AMOUNT_CENTS)}")
    return cents


def positive_cents(value: Any, field: str = "amount") -> int:
    cents = to_cents(value, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return cents


def non_negative_cents(value: Any, field: str = "amount") -> int:
    cents = to_cents(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    return cents


def format_cents(cents: int | None) -> str | None:
    """130050 -> "1300.50"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(CENTS))


def format_brl(cents: int) -> str:
    """130050 -> "R$ 1.300,50"."""
    negative = cents < 0
    whole, frac = divmod(abs(cents), 100)
    grouped = f"{whole:,}".replace(",", ".")
    text = f"R$ {grouped},{frac:02d}"
    return f"-{text}" if negative else text


def sum_denominations(counts: Mapping[Any, Any] | None) -> int:
    """
    Total in cents of a note/coin count breakdown.

    Keys are face values in units ("50", "0.25", 2); values are
    non-negative integer counts.
    """
    if not counts:
        return 0
    if not isinstance(counts, Mapping):
        raise ValidationError("denominations must be an object of value -> count")

    total = 0
    for face, count in counts.items():
        face_cents = to_cents(face, "denomination")
        if face_cents not in DENOMINATIONS_CENTS:
            raise ValidationError(f"Unknown denomination: {face}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(f"Count for denomination {face} must be a non-negative integer")
        total += face_cents * count
    return total


def compute_balance(opening_cents: int, entries_cents: int, exits_cents: int) -> int:
    return opening_cents + entries_cents - exits_cents


def compute_difference(closing_cents: int, balance_cents: int) -> int:
    """Positive means surplus in the drawer, negative means shortage."""
    return closing_cents - balance_cents


def compute_order_total(subtotal_cents: int, discount_cents: int, surcharge_cents: int) -> int:
    return max(0, subtotal_cents - discount_cents + surcharge_cents)


def sum_cents(values: Iterable[int | None]) -> int:
    return sum(v or 0 for v in values)
