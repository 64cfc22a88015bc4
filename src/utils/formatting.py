from __future__ import annotations

from decimal import Decimal

MISSING = "-"


def format_decimal(value: Decimal | None) -> str:
    if value is None:
        return MISSING
    normalized = value.normalize()
    # Avoid scientific notation for integers.
    if normalized == normalized.to_integral():
        return f"{normalized:.0f}"
    return format(normalized, "f")


def format_usd(value: Decimal | None) -> str:
    if value is None:
        return MISSING
    return f"{value.quantize(Decimal('0.01')):.2f}"
