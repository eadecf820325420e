"""Money conversion between local minor units and ERP-facing major units.

Local storage keeps integer minor units (``150000``); everything that
crosses the ERP boundary or is shown to a user is a ``Decimal`` in major
units (``Decimal("1500.00")``).  The MoySklad wire format is itself in
hundredths, so ``from_erp`` / ``to_erp`` are the only places the raw
numbers are touched.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MINOR_PER_MAJOR = 100
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_major(minor: int) -> Decimal:
    """Convert integer minor units to a two-place major-unit decimal."""
    return round2(Decimal(minor) / MINOR_PER_MAJOR)


def to_minor(major: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to integer minor units (half-up)."""
    value = major if isinstance(major, Decimal) else Decimal(str(major))
    return int((value * MINOR_PER_MAJOR).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_decimal(raw: object) -> Decimal | None:
    """Parse a JSON number (or numeric string) into a ``Decimal``."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None


def from_erp(raw: object) -> Decimal | None:
    """Convert an ERP wire amount (hundredths) to major units."""
    value = to_decimal(raw)
    if value is None:
        return None
    return round2(value / MINOR_PER_MAJOR)


def to_erp(major: Decimal) -> int:
    """Convert a major-unit amount to the ERP wire format."""
    return to_minor(major)
