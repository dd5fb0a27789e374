"""
Module: pricing_kernel.db.types
Responsibility: Annotated type aliases and the sanctioned rounding helpers for
    monetary totals and CPM rates.  Centralizes precision so that every model,
    engine, and service rounds the same way.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    engines, and services.  MUST NOT import from any of those layers.

Invariants enforced:
    - Totals are held in whole cents (MONEY_DECIMAL_PLACES = 2) once rounded.
    - CPM rates are held at CPM_DECIMAL_PLACES = 9, the scale of the Numeric(38, 9)
      column type, so a rate multiplied back by thousands lands on the same cent.
    - CRITICAL: No floats.  to_decimal() rejects float input outright.

Failure modes:
    - TypeError on float input to to_decimal().
    - decimal.InvalidOperation on non-numeric strings.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary total or CPM rate: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Size key as shown on the rate grid (e.g., "9 3/4 x 22 1/8")
SizeKey = Annotated[str, String(100)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]


MONEY_DECIMAL_PLACES = 2
CPM_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
THOUSAND = Decimal("1000")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce a value to Decimal.

    Floats are refused: a binary float has already lost the cent it claims
    to represent.

    Raises:
        TypeError: If value is a float (or bool).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary values must be Decimal, int or str, got {type(value).__name__}")
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the specified decimal places.

    This is the ONLY sanctioned rounding function for totals and rates.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_cpm(value: Decimal, decimal_places: int = CPM_DECIMAL_PLACES) -> Decimal:
    """Round a per-thousand rate to CPM precision."""
    return round_money(value, decimal_places)
