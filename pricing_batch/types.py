"""
pricing_batch.types -- Pure frozen dataclasses for batch reconciliation.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pricing_engines.consistency import ValidationFinding
from pricing_kernel.domain.modes import AllocationMode


class ReconcileMode(str, Enum):
    """Whether a run only reports or also persists."""

    DRY_RUN = "dry_run"
    APPLY = "apply"


class RecordOutcome(str, Enum):
    """Per-record result of a reconciliation run."""

    FIXED = "fixed"  # Diff found (persisted in APPLY, reported in DRY_RUN)
    UNCHANGED = "unchanged"  # Empty diff, record not touched
    SKIPPED = "skipped"  # Refused to touch, e.g. invoice conflict
    ERROR = "error"  # Recompute or validation failed


class CalculationBasis(str, Enum):
    """Where the customer total used for recomputation came from."""

    CUSTOMER_INVOICE = "customer_invoice"
    QUOTED_CPM = "quoted_cpm"
    BASELINE = "baseline"


@dataclass(frozen=True)
class Selector:
    """
    Which jobs a run covers.

    Empty job_numbers and modes select every job.  Both may be combined.
    """

    job_numbers: tuple[str, ...] = ()
    modes: tuple[AllocationMode, ...] = ()

    @classmethod
    def all(cls) -> Selector:
        return cls()

    @classmethod
    def jobs(cls, *job_numbers: str) -> Selector:
        return cls(job_numbers=tuple(job_numbers))

    @classmethod
    def by_mode(cls, *modes: AllocationMode | str) -> Selector:
        return cls(modes=tuple(AllocationMode.parse(m) for m in modes))


@dataclass(frozen=True)
class FieldChange:
    """One stored value that differs from its recomputed value."""

    entity: str  # "job" or "purchase_order:broker->intermediary"
    field: str
    old: Any
    new: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "field": self.field,
            "old": _jsonable(self.old),
            "new": _jsonable(self.new),
        }


@dataclass(frozen=True)
class RecordDiff:
    """Result for one job."""

    job_number: str
    outcome: RecordOutcome
    changes: tuple[FieldChange, ...] = ()
    findings: tuple[ValidationFinding, ...] = ()
    basis: CalculationBasis | None = None
    applied: bool = False
    reason: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_number": self.job_number,
            "outcome": self.outcome.value,
            "basis": self.basis.value if self.basis else None,
            "applied": self.applied,
            "reason": self.reason,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "changes": [c.to_dict() for c in self.changes],
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of one run, records sorted by job number."""

    run_id: str
    mode: ReconcileMode
    fixed: tuple[RecordDiff, ...] = ()
    skipped: tuple[RecordDiff, ...] = ()
    errors: tuple[RecordDiff, ...] = ()
    # Selected but never started because the run was cancelled
    not_started: tuple[str, ...] = ()
    cancelled: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    actor_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.mode is ReconcileMode.DRY_RUN

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def total_records(self) -> int:
        return len(self.fixed) + len(self.skipped) + len(self.errors)

    def summary(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "fixed": len(self.fixed),
            "skipped": len(self.skipped),
            "errors": len(self.errors),
            "not_started": len(self.not_started),
            "cancelled": self.cancelled,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value
