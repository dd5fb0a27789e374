"""
Pure pricing engines.

Nothing in this package performs I/O.  Rate tables, policy and converters
are injected; results are frozen dataclasses.
"""

from pricing_engines.allocation import (
    AllocationEngine,
    Breakdown,
    CalculationDirection,
    PricingOverrides,
)
from pricing_engines.consistency import (
    ConsistencyValidator,
    Severity,
    ValidationFinding,
    ValidationResult,
)
from pricing_engines.rates import RateTable, RateTableEntry, normalize_size_key
from pricing_engines.undercharge import UnderchargeDetector, UnderchargeResult
from pricing_engines.units import UnitConverter, to_cpm, to_total

__all__ = [
    "AllocationEngine",
    "Breakdown",
    "CalculationDirection",
    "ConsistencyValidator",
    "PricingOverrides",
    "RateTable",
    "RateTableEntry",
    "Severity",
    "UnderchargeDetector",
    "UnderchargeResult",
    "UnitConverter",
    "ValidationFinding",
    "ValidationResult",
    "normalize_size_key",
    "to_cpm",
    "to_total",
]
