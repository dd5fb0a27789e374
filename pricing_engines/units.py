"""
Module: pricing_engines.units
Responsibility: Conversion between absolute totals and per-thousand (CPM)
    rates for a given quantity.  Every other engine converts through here.
Architecture position: Engines.  Pure; imports only kernel types and errors.

Invariants enforced:
    - quantity is a positive integer (InvalidQuantityError otherwise).
    - Totals are quantized to whole cents, CPMs to nine places, both
      ROUND_HALF_UP.
    - Round trip: to_total(to_cpm(x, q), q) == x for whole-cent x.  With nine
      CPM places the re-multiplied error stays below half a cent for every
      realistic quantity, so the round trip is exact, not merely within a
      cent.  It is trivially exact when q is a multiple of 1000.

Failure modes:
    - InvalidQuantityError on quantity <= 0, non-int, or bool.
    - TypeError on float amounts.
"""

from decimal import Decimal

from pricing_kernel.db.types import (
    CPM_DECIMAL_PLACES,
    MONEY_DECIMAL_PLACES,
    ONE_CENT,
    THOUSAND,
    round_money,
    to_decimal,
)
from pricing_kernel.exceptions import InvalidQuantityError


def validate_quantity(quantity: object) -> int:
    """Return quantity unchanged if it is a positive int, else raise."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


class UnitConverter:
    """
    Totals <-> CPM converter.

    Precision is configurable so that the allocation policy in the active
    pricing configuration decides the rounding scale.
    """

    def __init__(
        self,
        money_decimal_places: int = MONEY_DECIMAL_PLACES,
        cpm_decimal_places: int = CPM_DECIMAL_PLACES,
        tolerance: Decimal = ONE_CENT,
    ):
        self.money_decimal_places = money_decimal_places
        self.cpm_decimal_places = cpm_decimal_places
        self.tolerance = tolerance

    def quantity_in_thousands(self, quantity: int) -> Decimal:
        return Decimal(validate_quantity(quantity)) / THOUSAND

    def to_cpm(self, total: Decimal | int | str, quantity: int) -> Decimal:
        """Rate per thousand for ``total`` spread over ``quantity`` pieces."""
        q = validate_quantity(quantity)
        return self.round_cpm(to_decimal(total) * THOUSAND / Decimal(q))

    def to_total(self, rate: Decimal | int | str, quantity: int) -> Decimal:
        """Whole-cent total for ``rate`` per thousand over ``quantity`` pieces."""
        q = validate_quantity(quantity)
        return self.round_total(to_decimal(rate) * Decimal(q) / THOUSAND)

    def round_total(self, value: Decimal) -> Decimal:
        return round_money(value, self.money_decimal_places)

    def round_cpm(self, value: Decimal) -> Decimal:
        return round_money(value, self.cpm_decimal_places)

    def within_tolerance(self, a: Decimal, b: Decimal) -> bool:
        """True if two amounts agree within the configured tolerance."""
        return abs(to_decimal(a) - to_decimal(b)) <= self.tolerance

    def pair_consistent(self, total: Decimal, rate: Decimal, quantity: int) -> bool:
        """True if a stored total agrees with its paired CPM."""
        return self.within_tolerance(self.to_total(rate, quantity), total)


_default = UnitConverter()


def to_cpm(total: Decimal | int | str, quantity: int) -> Decimal:
    """Module-level shortcut using default precision."""
    return _default.to_cpm(total, quantity)


def to_total(rate: Decimal | int | str, quantity: int) -> Decimal:
    """Module-level shortcut using default precision."""
    return _default.to_total(rate, quantity)
