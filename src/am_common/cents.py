"""Integer arithmetic utilities for money.

All prices and bid amounts are int cents. Decimal is only used at the edge,
to parse user input without float rounding.
"""

from decimal import Decimal, InvalidOperation

from src.am_common.errors import InvalidAmountError

ONE_CENT = 1
# Largest amount a BIGINT column holds
MAX_CENTS = 2**63 - 1


def parse_amount(value: str | int | float | Decimal) -> int:
    """Convert a decimal amount ('150', '150.5', 175.25) to cents.

    Rejects negatives, non-finite values, more than two fractional digits
    and amounts above MAX_CENTS.
    """
    try:
        dec = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmountError(f"not a number: {value!r}") from None
    if not dec.is_finite():
        raise InvalidAmountError(f"not a finite number: {value!r}")
    if dec < 0:
        raise InvalidAmountError(f"must not be negative: {value!r}")
    cents = dec * 100
    if cents != cents.to_integral_value():
        raise InvalidAmountError(f"at most two decimal places: {value!r}")
    if cents > MAX_CENTS:
        raise InvalidAmountError(f"too large: {value!r}")
    return int(cents)


def cents_to_decimal(cents: int) -> Decimal:
    """17500 -> Decimal('175.00')."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 17500 -> '$175.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"
