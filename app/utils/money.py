"""Money helpers shared by the ledger, the schemas and the workflow client"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

ZERO = Decimal("0")
CENT = Decimal("0.01")


def coerce_amount(value: Any) -> Decimal:
    """
    Coerce a form/API value into a Decimal amount.

    None, "", unparseable strings, NaN and infinities become 0; everything
    else is quantized to cents. Sign is preserved; callers decide whether a
    negative value is acceptable.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, str):
        value = value.strip().replace(",", "").lstrip("$")
        if not value:
            return ZERO
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    if not amount.is_finite():
        return ZERO
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def total_paid(amounts: Iterable[Any]) -> Decimal:
    return sum((coerce_amount(a) for a in amounts), ZERO)


def remaining_balance(patient_responsibility: Any, payment_amounts: Iterable[Any]) -> Decimal:
    """max(patient_responsibility - sum(payments), 0)"""
    remaining = coerce_amount(patient_responsibility) - total_paid(payment_amounts)
    return max(remaining, ZERO)


def to_cents(amount: Any) -> int:
    return int((coerce_amount(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
