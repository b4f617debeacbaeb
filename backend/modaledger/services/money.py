# Overview: Shared numeric policy for the ledger: cents conversion, rounding and tolerances.

"""
All amounts are held as integer cents. Currency units only appear at the
edges (JSON inputs, backup documents, spreadsheet cells) and are converted
here with half-up rounding.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ..errors import ValidationError


# An installment counts as paid when at most 0.05 is still missing.
SETTLEMENT_TOLERANCE_CENTS = 5

# The dashboard ignores leftovers up to 0.10 when counting overdue installments.
OVERDUE_TOLERANCE_CENTS = 10

_CURRENCY_NOISE = re.compile(r'["R$\s]')


def is_settled(amount_paid_cents: int, value_cents: int) -> bool:
    return amount_paid_cents >= value_cents - SETTLEMENT_TOLERANCE_CENTS


def clamp_non_negative(cents: int) -> int:
    return cents if cents > 0 else 0


def to_cents(value: Any, *, field: str = "amount") -> int:
    """
    Convert a currency-unit amount (int, float, Decimal or numeric string)
    to integer cents, rounding half-up.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> float:
    if not cents:
        return 0.0
    return float(Decimal(cents) / 100)


def parse_currency(text: Any) -> int:
    """
    Parse a spreadsheet currency cell ("R$ 1.234,56", "120,00", "") into
    cents. Unparsable cells are treated as 0.
    """
    if text is None:
        return 0
    if isinstance(text, (int, float, Decimal)) and not isinstance(text, bool):
        return to_cents(text)
    clean = _CURRENCY_NOISE.sub("", str(text))
    if not clean:
        return 0
    # "." is a thousands separator; the first "," is the decimal separator
    clean = clean.replace(".", "").replace(",", ".", 1)
    try:
        return to_cents(clean)
    except ValidationError:
        return 0
