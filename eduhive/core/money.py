"""Money helpers. Stored amounts are integer paise; the API speaks two-decimal rupees."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from eduhive.core.exceptions import InvalidAmountError

CENT = Decimal("0.01")


def to_decimal(amount: Any) -> Decimal:
    """Parse an amount into a two-decimal Decimal (half-up)."""
    if isinstance(amount, bool):
        raise InvalidAmountError(amount, "Amount must be a number")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(amount, "Amount must be a number")
    if not value.is_finite():
        raise InvalidAmountError(amount, "Amount must be a number")
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(amount, "Amount is too large")


def to_paise(amount: Any) -> int:
    return int(to_decimal(amount) * 100)


def from_paise(paise: int) -> Decimal:
    return (Decimal(paise) / 100).quantize(CENT)


def positive_paise(amount: Any) -> int:
    """Like to_paise but rejects zero and negative amounts."""
    paise = to_paise(amount)
    if paise <= 0:
        raise InvalidAmountError(amount)
    return paise
