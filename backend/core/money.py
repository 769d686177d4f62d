"""Decimal money helpers shared by pricing, deposits, closeout and loyalty."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def q2(value: Decimal | int | str) -> Decimal:
    """Quantize to cents, rounding half up."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_money(value, field_name: str) -> Decimal:
    """Parse a JSON/string amount into a cent-quantized Decimal or raise ValueError."""
    if value in (None, ""):
        raise ValueError(f"{field_name} is required.")
    try:
        return q2(Decimal(str(value)))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name} must be a decimal amount.") from exc


def to_cents(amount: Decimal) -> int:
    """Convert Decimal dollars to integer cents, rounding to the nearest cent."""
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def from_cents(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / Decimal("100")).quantize(TWO_PLACES)


def format_money(value) -> str | None:
    if value is None:
        return None
    return f"{q2(value):.2f}"
