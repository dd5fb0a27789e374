"""
Module: pricing_engines.undercharge
Responsibility: Flag customer rates below the size's approved floor.
Architecture position: Engines.  Pure.

The result is advisory.  It never blocks a calculation; it annotates the
breakdown so the approval workflow downstream can pick it up.
"""

from dataclasses import dataclass
from decimal import Decimal

from pricing_engines.rates import RateTableEntry
from pricing_engines.units import UnitConverter
from pricing_kernel.db.types import to_decimal


@dataclass(frozen=True)
class UnderchargeResult:
    """Outcome of an undercharge check."""

    requires_approval: bool
    threshold_cpm: Decimal
    shortfall_total: Decimal | None = None


class UnderchargeDetector:
    """Compares a customer CPM against an entry's minimum (or standard) rate."""

    def __init__(self, converter: UnitConverter | None = None):
        self._converter = converter or UnitConverter()

    def detect(
        self,
        customer_cpm: Decimal,
        entry: RateTableEntry,
        quantity: int,
    ) -> UnderchargeResult:
        threshold = entry.threshold_cpm
        cpm = to_decimal(customer_cpm)
        if cpm >= threshold:
            return UnderchargeResult(requires_approval=False, threshold_cpm=threshold)
        return UnderchargeResult(
            requires_approval=True,
            threshold_cpm=threshold,
            shortfall_total=self._converter.to_total(threshold - cpm, quantity),
        )
