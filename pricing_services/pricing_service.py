"""
pricing_services.pricing_service -- Persist a job's pricing after validation.

Responsibility:
    The save path for job intake and admin edits: allocate, validate, refuse
    blocking errors, write the job pricing row (and amounts on any existing
    purchase orders), and record an audit row.  Also seeds and loads the
    persisted rate grid.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Works inside
    the caller's session; the caller owns the transaction (session_scope).

Invariants enforced:
    - A job is never saved with a blocking validation error (negative broker
      margin, non-positive customer total, non-zero markup in supply/waiver
      modes).  raise_for_errors() raises before anything is written.
    - An issued customer invoice fixes the customer total.  Pricing from a
      different total raises InvoiceConflictError.
    - Saving identical inputs twice writes nothing the second time.
    - A quoted customer rate or total is stored as customer_cpm_override, so
      reconciliation reprices the job from the same quote.

Failure modes:
    - InvalidQuantityError, UnknownSizeError, InvalidModeError from the engine.
    - NegativeBrokerMarginError, NonPositiveCustomerTotalError,
      MaterialMarkupInconsistencyError from validation.
    - InvoiceConflictError as above.

Audit relevance:
    Every write produces one PricingAuditEvent (JOB_PRICED on create,
    JOB_REPRICED on change, RATE_TABLE_SEEDED for the grid) with old/new
    values and a payload hash.

Usage:
    with session_scope() as session:
        service = PricingService(session, engine)
        priced = service.price_job(
            job_number="J-1001",
            quantity=15000,
            mode=AllocationMode.STANDARD,
            size_key="9 3/4 x 22 1/8",
            actor_id="admin@example.com",
        )
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pricing_batch.diff import (
    JOB_ENTITY,
    apply_changes,
    changes_payload,
    diff_job,
    diff_purchase_orders,
    index_purchase_orders,
)
from pricing_batch.types import FieldChange
from pricing_config.schema import PartyConfig
from pricing_engines.allocation import AllocationEngine, Breakdown, PricingOverrides
from pricing_engines.consistency import ConsistencyValidator, ValidationResult
from pricing_engines.legs import CUSTOMER_INVOICE
from pricing_engines.rates import RateTable, normalize_size_key
from pricing_kernel.db.types import to_decimal
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.modes import AllocationMode
from pricing_kernel.exceptions import InvoiceConflictError
from pricing_kernel.logging_config import get_logger
from pricing_kernel.models.audit_event import PricingAuditAction, PricingAuditEvent
from pricing_kernel.models.documents import InvoiceModel, PurchaseOrderModel
from pricing_kernel.models.job import JobPricingModel
from pricing_kernel.models.rate import RateTableEntryModel
from pricing_kernel.utils.hashing import hash_payload

logger = get_logger("services.pricing")

_RATE_FIELDS = (
    "print_cpm",
    "paper_weight_per_m",
    "paper_cost_per_lb",
    "paper_charge_cpm",
    "standard_customer_cpm",
    "minimum_customer_cpm",
    "paper_type",
)


@dataclass(frozen=True)
class PricedJob:
    """Result of PricingService.price_job()."""

    job_number: str
    breakdown: Breakdown
    validation: ValidationResult
    changes: tuple[FieldChange, ...]
    created: bool

    @property
    def written(self) -> bool:
        return self.created or bool(self.changes)


class PricingService:
    """
    Job pricing save path.

    Contract:
        Operates on the injected session and flushes; never commits.
    """

    def __init__(
        self,
        session: Session,
        engine: AllocationEngine,
        validator: ConsistencyValidator | None = None,
        clock: Clock | None = None,
        parties: PartyConfig | None = None,
    ):
        self._session = session
        self._parties = parties
        self._engine = engine
        self._validator = validator or ConsistencyValidator(engine.converter)
        self._clock = clock or SystemClock()

    def price_job(
        self,
        *,
        job_number: str,
        quantity: int,
        mode: AllocationMode | str,
        actor_id: str,
        size_key: str | None = None,
        overrides: PricingOverrides | None = None,
        known_customer_total: Decimal | int | str | None = None,
    ) -> PricedJob:
        """
        Allocate, validate, and persist one job's pricing.

        Raises:
            See module docstring.
        """
        session = self._session
        job = session.execute(
            select(JobPricingModel).where(JobPricingModel.job_number == job_number)
        ).scalar_one_or_none()
        created = job is None

        quoted_total = known_customer_total
        purchase_orders = {}
        if job is not None:
            known_customer_total = self._customer_total_from_invoice(
                job, known_customer_total
            )
            purchase_orders = index_purchase_orders(
                session.execute(
                    select(PurchaseOrderModel).where(PurchaseOrderModel.job_id == job.id)
                ).scalars()
            )

        breakdown = self._engine.allocate(
            quantity=quantity,
            mode=mode,
            size_key=size_key,
            overrides=overrides,
            known_customer_total=known_customer_total,
        )
        validation = self._validator.validate(breakdown)
        validation.raise_for_errors(job_number)

        if job is None:
            job = JobPricingModel(
                job_number=job_number,
                quantity=breakdown.quantity,
                size_key=breakdown.size_key,
                mode=breakdown.mode.value,
            )
            session.add(job)

        overrides = overrides or PricingOverrides()
        quoted_cpm = _quoted_cpm(overrides, breakdown, quoted_total)
        changes = _input_changes(job, breakdown, overrides, quoted_cpm) if not created else []
        changes += diff_job(job, breakdown, self._engine.converter)
        changes += diff_purchase_orders(purchase_orders, breakdown, self._engine.converter)

        if created:
            _set_overrides(job, overrides, quoted_cpm)

        if changes or created:
            apply_changes(job, purchase_orders, changes)
            job.updated_by = actor_id
            session.flush()
            action = PricingAuditAction.JOB_PRICED if created else PricingAuditAction.JOB_REPRICED
            payload = {
                **changes_payload(changes),
                "mode": breakdown.mode.value,
                "direction": breakdown.direction.value,
                "quantity": breakdown.quantity,
                "size_key": breakdown.size_key,
                "is_custom_pricing": breakdown.is_custom_pricing,
                "warnings": [f.code for f in validation.warnings],
            }
            if self._parties is not None:
                payload["parties"] = self._parties.as_payload()
            session.add(PricingAuditEvent(
                entity_type="JobPricing",
                entity_id=job.id,
                job_number=job_number,
                action=action.value,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload=payload,
                payload_hash=hash_payload(payload),
            ))
            session.flush()

        logger.info(
            "job_priced",
            extra={
                "job_number": job_number,
                "job_created": created,
                "change_count": len(changes),
                "mode": breakdown.mode.value,
                "customer_total": str(breakdown.customer_total),
                "requires_approval": breakdown.requires_approval,
                "warning_count": len(validation.warnings),
            },
        )
        return PricedJob(
            job_number=job_number,
            breakdown=breakdown,
            validation=validation,
            changes=tuple(changes),
            created=created,
        )

    def _customer_total_from_invoice(
        self,
        job: JobPricingModel,
        known_customer_total: Decimal | int | str | None,
    ) -> Decimal | int | str | None:
        invoice = self._session.execute(
            select(InvoiceModel).where(
                InvoiceModel.job_id == job.id,
                InvoiceModel.from_party == CUSTOMER_INVOICE.from_party.value,
                InvoiceModel.to_party == CUSTOMER_INVOICE.to_party.value,
            )
        ).scalar_one_or_none()
        if invoice is None:
            return known_customer_total
        if known_customer_total is not None and not self._engine.converter.within_tolerance(
            invoice.amount, to_decimal(known_customer_total)
        ):
            raise InvoiceConflictError(
                job.job_number,
                CUSTOMER_INVOICE.label(self._parties),
                invoice.amount,
                to_decimal(known_customer_total),
            )
        return invoice.amount


def _quoted_cpm(
    overrides: PricingOverrides,
    breakdown: Breakdown,
    quoted_total: Decimal | int | str | None,
) -> Decimal | None:
    """
    The customer rate to store as the job's quote.

    A caller-supplied total wins over a customer CPM override, as it does
    in the engine, and is kept as its CPM so reconciliation, pricing forward
    from the quote, lands on the same cent.
    """
    if quoted_total is not None:
        return breakdown.customer_cpm
    if overrides.customer_cpm is not None:
        return to_decimal(overrides.customer_cpm)
    return None


def _input_changes(
    job: JobPricingModel,
    breakdown: Breakdown,
    overrides: PricingOverrides,
    quoted_cpm: Decimal | None,
) -> list[FieldChange]:
    """Changes to the stored inputs themselves (quantity, size, overrides)."""
    changes: list[FieldChange] = []
    if job.quantity != breakdown.quantity:
        changes.append(FieldChange(JOB_ENTITY, "quantity", job.quantity, breakdown.quantity))
    if job.size_key != breakdown.size_key:
        changes.append(FieldChange(JOB_ENTITY, "size_key", job.size_key, breakdown.size_key))
    for column, value in (
        ("customer_cpm_override", quoted_cpm),
        ("print_cpm_override", overrides.print_cpm),
        ("material_cost_cpm_override", overrides.material_cost_cpm),
        ("material_charge_cpm_override", overrides.material_charge_cpm),
    ):
        old = getattr(job, column)
        if (old is None) != (value is None) or (old is not None and old != value):
            changes.append(FieldChange(JOB_ENTITY, column, old, value))
    return changes


def _set_overrides(
    job: JobPricingModel,
    overrides: PricingOverrides,
    quoted_cpm: Decimal | None,
) -> None:
    job.customer_cpm_override = quoted_cpm
    job.print_cpm_override = overrides.print_cpm
    job.material_cost_cpm_override = overrides.material_cost_cpm
    job.material_charge_cpm_override = overrides.material_charge_cpm


def load_rate_table(session: Session, fallback: Iterable = ()) -> RateTable:
    """
    The persisted rate grid, or ``fallback`` records if the table is empty.

    ``fallback`` is typically the configuration baseline (PricingConfig.rates).
    """
    rows = list(
        session.execute(
            select(RateTableEntryModel).where(RateTableEntryModel.is_active.is_(True))
        ).scalars()
    )
    if rows:
        return RateTable.from_records(rows)
    return RateTable.from_records(fallback)


def seed_rate_table(
    session: Session,
    rates: Iterable,
    actor_id: str,
    clock: Clock | None = None,
) -> int:
    """
    Insert or update rate grid rows from configuration records.

    Rows are matched on normalized size key.  Returns the number of rows
    inserted or changed; zero means nothing was written and no audit row
    was recorded.
    """
    clock = clock or SystemClock()
    existing = {
        row.size_key: row
        for row in session.execute(select(RateTableEntryModel)).scalars()
    }
    touched: list[str] = []
    for rate in rates:
        key = normalize_size_key(rate.size_key)
        values = {name: getattr(rate, name, None) for name in _RATE_FIELDS}
        row = existing.get(key)
        if row is None:
            session.add(RateTableEntryModel(size_key=key, updated_by=actor_id, **values))
            touched.append(key)
            continue
        if any(getattr(row, name) != value for name, value in values.items()) or not row.is_active:
            for name, value in values.items():
                setattr(row, name, value)
            row.is_active = True
            row.updated_by = actor_id
            touched.append(key)

    if touched:
        session.flush()
        payload = {"sizes": sorted(touched)}
        session.add(PricingAuditEvent(
            entity_type="RateTable",
            entity_id=None,
            job_number=None,
            action=PricingAuditAction.RATE_TABLE_SEEDED.value,
            actor_id=actor_id,
            occurred_at=clock.now(),
            payload=payload,
            payload_hash=hash_payload(payload),
        ))
        session.flush()

    logger.info("rate_table_seeded", extra={"changed": len(touched)})
    return len(touched)
