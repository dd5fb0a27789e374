"""Batch reconciliation of stored job pricing."""

from pricing_batch.runner import ReconciliationRunner
from pricing_batch.types import (
    CalculationBasis,
    FieldChange,
    ReconcileMode,
    ReconciliationReport,
    RecordDiff,
    RecordOutcome,
    Selector,
)

__all__ = [
    "CalculationBasis",
    "FieldChange",
    "ReconcileMode",
    "ReconciliationReport",
    "ReconciliationRunner",
    "RecordDiff",
    "RecordOutcome",
    "Selector",
]
