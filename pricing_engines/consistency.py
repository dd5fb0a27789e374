"""
Module: pricing_engines.consistency
Responsibility: Check a computed breakdown or a stored job record against its
    own arithmetic invariants and classify every violation.
Architecture position: Engines.  Pure.  Accepts any object exposing the
    priced ``*_total`` / ``*_cpm`` attributes plus ``mode`` and ``quantity``,
    so the same checks run on fresh Breakdowns and on JobPricingModel rows.

Checks:
    (a) customer_total > 0                                   ERROR
    (b) broker_margin >= 0                                   ERROR
    (c) intermediary_total_margin >= 0                       WARNING
    (d) intermediary_total == printer_total + material_charge
        + intermediary_print_margin, within tolerance        WARNING
        (supply mode: the printer's share already contains the material,
        so the identity is printer_total + intermediary_print_margin)
    (e) supply/waiver: material markup == 0 exactly          ERROR
    (f) every total agrees with its CPM within tolerance     WARNING
    (g) supply/waiver: print margin == total margin          ERROR
    (i) requires_approval                                    ANNOTATION

Purchase orders are checked separately by check_purchase_order():
    (h) margin_amount == original_amount - vendor_amount     WARNING

Failure modes:
    - None raised by the checks themselves.  ValidationResult.raise_for_errors()
      converts the first error into its typed exception for save paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from pricing_engines.units import UnitConverter
from pricing_kernel.db.types import ZERO
from pricing_kernel.domain.fields import PRICING_FIELDS, cpm_column, total_column
from pricing_kernel.domain.modes import AllocationMode
from pricing_kernel.exceptions import (
    MaterialMarkupInconsistencyError,
    NegativeBrokerMarginError,
    NonPositiveCustomerTotalError,
)

NON_POSITIVE_CUSTOMER_TOTAL = "NON_POSITIVE_CUSTOMER_TOTAL"
NEGATIVE_BROKER_MARGIN = "NEGATIVE_BROKER_MARGIN"
NEGATIVE_INTERMEDIARY_MARGIN = "NEGATIVE_INTERMEDIARY_MARGIN"
CROSS_FIELD_MISMATCH = "CROSS_FIELD_MISMATCH"
MATERIAL_MARKUP_INCONSISTENCY = "MATERIAL_MARKUP_INCONSISTENCY"
APPROVAL_REQUIRED = "APPROVAL_REQUIRED"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    ANNOTATION = "annotation"


@dataclass(frozen=True)
class ValidationFinding:
    """One violated (or annotated) invariant."""

    code: str
    severity: Severity
    message: str
    field: str | None = None
    expected: Decimal | None = None
    actual: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "field": self.field,
            "expected": str(self.expected) if self.expected is not None else None,
            "actual": str(self.actual) if self.actual is not None else None,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Findings split by severity."""

    errors: tuple[ValidationFinding, ...] = ()
    warnings: tuple[ValidationFinding, ...] = ()
    annotations: tuple[ValidationFinding, ...] = ()

    @property
    def is_valid(self) -> bool:
        """True if nothing blocks a save.  Warnings do not."""
        return not self.errors

    @property
    def codes(self) -> set[str]:
        return {f.code for f in (*self.errors, *self.warnings, *self.annotations)}

    @classmethod
    def from_findings(cls, findings: list[ValidationFinding]) -> ValidationResult:
        return cls(
            errors=tuple(f for f in findings if f.severity is Severity.ERROR),
            warnings=tuple(f for f in findings if f.severity is Severity.WARNING),
            annotations=tuple(f for f in findings if f.severity is Severity.ANNOTATION),
        )

    def merge(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
            annotations=self.annotations + other.annotations,
        )

    def raise_for_errors(self, job_number: str | None = None) -> None:
        """
        Raise the typed exception for the first error, if any.

        Raises:
            NonPositiveCustomerTotalError, NegativeBrokerMarginError,
            MaterialMarkupInconsistencyError
        """
        if not self.errors:
            return
        first = self.errors[0]
        if first.code == NON_POSITIVE_CUSTOMER_TOTAL:
            raise NonPositiveCustomerTotalError(first.actual)
        if first.code == NEGATIVE_BROKER_MARGIN:
            raise NegativeBrokerMarginError(first.actual, job_number=job_number)
        raise MaterialMarkupInconsistencyError(first.field or "", first.actual)


class ConsistencyValidator:
    """Runs checks (a) through (i)."""

    def __init__(self, converter: UnitConverter | None = None):
        self._converter = converter or UnitConverter()

    def validate(self, breakdown: Any) -> ValidationResult:
        mode = AllocationMode.parse(breakdown.mode)
        quantity = breakdown.quantity
        findings: list[ValidationFinding] = []

        customer_total = breakdown.customer_total
        if customer_total is None or customer_total <= ZERO:
            findings.append(ValidationFinding(
                code=NON_POSITIVE_CUSTOMER_TOTAL,
                severity=Severity.ERROR,
                message="Customer total must be greater than zero",
                field="customer_total",
                actual=customer_total,
            ))

        broker = breakdown.broker_margin_total
        if broker is not None and broker < ZERO:
            findings.append(ValidationFinding(
                code=NEGATIVE_BROKER_MARGIN,
                severity=Severity.ERROR,
                message="Broker margin is negative",
                field="broker_margin_total",
                actual=broker,
            ))

        total_margin = breakdown.intermediary_total_margin_total
        if total_margin is not None and total_margin < ZERO:
            findings.append(ValidationFinding(
                code=NEGATIVE_INTERMEDIARY_MARGIN,
                severity=Severity.WARNING,
                message="Intermediary total margin is negative",
                field="intermediary_total_margin_total",
                actual=total_margin,
            ))

        findings.extend(self._check_intermediary_identity(breakdown, mode))
        if mode.forces_zero_markup:
            findings.extend(self._check_zero_markup(breakdown, mode))
        findings.extend(self._check_unit_pairs(breakdown, quantity))

        if getattr(breakdown, "requires_approval", False):
            undercharge = getattr(breakdown, "undercharge", None)
            findings.append(ValidationFinding(
                code=APPROVAL_REQUIRED,
                severity=Severity.ANNOTATION,
                message="Customer rate is below the approved minimum",
                field="customer_cpm",
                expected=undercharge.threshold_cpm if undercharge is not None else None,
                actual=breakdown.customer_cpm,
            ))

        return ValidationResult.from_findings(findings)

    def check_purchase_order(self, po: Any) -> list[ValidationFinding]:
        """Check (h) on a PO-shaped object."""
        if None in (po.original_amount, po.vendor_amount, po.margin_amount):
            return []
        expected = po.original_amount - po.vendor_amount
        if self._converter.within_tolerance(po.margin_amount, expected):
            return []
        return [ValidationFinding(
            code=CROSS_FIELD_MISMATCH,
            severity=Severity.WARNING,
            message="PO margin does not equal original minus vendor amount",
            field="purchase_order.margin_amount",
            expected=expected,
            actual=po.margin_amount,
        )]

    def _check_intermediary_identity(
        self, breakdown: Any, mode: AllocationMode
    ) -> list[ValidationFinding]:
        parts = [breakdown.printer_total, breakdown.intermediary_print_margin_total]
        if mode is not AllocationMode.PRINTER_SUPPLIES_MATERIAL:
            parts.append(breakdown.material_charge_total)
        actual = breakdown.intermediary_total
        if actual is None or any(p is None for p in parts):
            return []
        expected = sum(parts, ZERO)
        if self._converter.within_tolerance(actual, expected):
            return []
        return [ValidationFinding(
            code=CROSS_FIELD_MISMATCH,
            severity=Severity.WARNING,
            message="Intermediary total does not equal its components",
            field="intermediary_total",
            expected=expected,
            actual=actual,
        )]

    def _check_zero_markup(
        self, breakdown: Any, mode: AllocationMode
    ) -> list[ValidationFinding]:
        findings: list[ValidationFinding] = []
        cost, charge = breakdown.material_cost_cpm, breakdown.material_charge_cpm
        markup = breakdown.intermediary_material_margin_total
        if (cost is not None and charge is not None and charge != cost) or (
            markup is not None and markup != ZERO
        ):
            findings.append(ValidationFinding(
                code=MATERIAL_MARKUP_INCONSISTENCY,
                severity=Severity.ERROR,
                message=f"Material markup must be zero in {mode.value}",
                field=mode.value,
                expected=ZERO,
                actual=markup if markup is not None and markup != ZERO else charge - cost,
            ))

        print_margin = breakdown.intermediary_print_margin_total
        total_margin = breakdown.intermediary_total_margin_total
        if print_margin is not None and total_margin is not None and print_margin != total_margin:
            findings.append(ValidationFinding(
                code=MATERIAL_MARKUP_INCONSISTENCY,
                severity=Severity.ERROR,
                message=f"Intermediary total margin must equal print margin in {mode.value}",
                field=mode.value,
                expected=print_margin,
                actual=total_margin - print_margin,
            ))
        return findings

    def _check_unit_pairs(self, breakdown: Any, quantity: int) -> list[ValidationFinding]:
        findings: list[ValidationFinding] = []
        for name in PRICING_FIELDS:
            total = getattr(breakdown, total_column(name))
            cpm = getattr(breakdown, cpm_column(name))
            if total is None or cpm is None:
                continue
            expected = self._converter.to_total(cpm, quantity)
            if not self._converter.within_tolerance(total, expected):
                findings.append(ValidationFinding(
                    code=CROSS_FIELD_MISMATCH,
                    severity=Severity.WARNING,
                    message=f"{total_column(name)} does not match {cpm_column(name)}",
                    field=total_column(name),
                    expected=expected,
                    actual=total,
                ))
        return findings
