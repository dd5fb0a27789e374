"""
ReconciliationRunner -- transaction-per-record batch repair of stored pricing.

Contract:
    For each selected job: load stored inputs, take the mode from the stored
    enum, re-run the allocation engine, diff every job pricing field and every
    existing PO amount at the configured tolerance, and report.  In APPLY
    mode the diff is persisted together with one audit row.

Choosing the customer total (the invoice is the source of truth):
    1. Broker -> Customer invoice exists: reverse from its amount.
    2. Otherwise the job carries a quoted customer_cpm_override: forward
       from the quote.
    3. Otherwise: forward from the rate table baseline.
    The stored customer_total is never an input, so drift in it is repaired
    like drift in any other field.

Invariants enforced:
    - One transaction per record (session_scope per record).  A failure in
      one record rolls back only that record; records already applied stay
      consistent.  No cross-record lock and no global lock.
    - Idempotent: records whose diff is empty are never written, so a second
      APPLY run with no intervening change reports zero fixes.
    - Invoices are never written.  A downstream invoice that disagrees with
      the recomputed split skips the record with an INVOICE_CONFLICT finding.
    - Records whose recomputed breakdown carries validation errors (e.g.
      negative broker margin) are reported under ``errors`` and left as is.
    - Cancellation is observed only between records.  A record already in
      its transaction runs to commit or rollback.

Failure modes:
    Nothing escapes run() per record: every exception is logged with its
    traceback and reported as an error entry, and the batch continues.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from pricing_batch.diff import (
    apply_changes,
    changes_payload,
    diff_job,
    diff_purchase_orders,
    index_purchase_orders,
)
from pricing_batch.types import (
    CalculationBasis,
    ReconcileMode,
    ReconciliationReport,
    RecordDiff,
    RecordOutcome,
    Selector,
)
from pricing_config.schema import PartyConfig
from pricing_engines.allocation import AllocationEngine, PricingOverrides
from pricing_engines.consistency import (
    ConsistencyValidator,
    Severity,
    ValidationFinding,
)
from pricing_engines.legs import CUSTOMER_INVOICE, DOWNSTREAM_INVOICE_LEGS
from pricing_kernel.db.engine import session_scope
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.exceptions import (
    InvoiceConflictError,
    JobNotFoundError,
    PricingKernelError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_kernel.models.audit_event import PricingAuditAction, PricingAuditEvent
from pricing_kernel.models.documents import InvoiceModel, PurchaseOrderModel
from pricing_kernel.models.job import JobPricingModel
from pricing_kernel.utils.hashing import hash_payload

logger = get_logger("batch.reconciliation")

DEFAULT_ACTOR = "pricing-reconciler"


class ReconciliationRunner:
    """Batch reconciliation over a session factory.

    Contract:
        - ``run()`` never raises for per-record failures.
        - Each record is processed in its own session and transaction, on a
          worker thread when ``workers > 1``.
        - With ``parties`` configured, invoice conflicts and audit payloads
          name the configured party ids.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        engine: AllocationEngine,
        validator: ConsistencyValidator | None = None,
        clock: Clock | None = None,
        workers: int = 1,
        actor_id: str = DEFAULT_ACTOR,
        parties: PartyConfig | None = None,
    ):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._session_factory = session_factory
        self._engine = engine
        self._converter = engine.converter
        self._validator = validator or ConsistencyValidator(self._converter)
        self._clock = clock or SystemClock()
        self._workers = workers
        self._actor_id = actor_id
        self._parties = parties

    def run(
        self,
        selector: Selector | None = None,
        mode: ReconcileMode = ReconcileMode.DRY_RUN,
        *,
        cancel_event: threading.Event | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationReport:
        """Reconcile every selected job and return the report."""
        selector = selector or Selector.all()
        mode = ReconcileMode(mode)
        actor = actor_id or self._actor_id
        cancel = cancel_event or threading.Event()
        run_id = str(uuid4())
        started_at = self._clock.now()

        with LogContext.bind(run_id=run_id, actor_id=actor):
            job_numbers, missing = self._select(selector)
            logger.info(
                "reconcile_run_started",
                extra={
                    "mode": mode.value,
                    "selected": len(job_numbers),
                    "workers": self._workers,
                },
            )

            results: list[RecordDiff] = [
                RecordDiff(
                    job_number=number,
                    outcome=RecordOutcome.ERROR,
                    error_code=JobNotFoundError.code,
                    error_message=str(JobNotFoundError(number)),
                )
                for number in missing
            ]

            def task(number: str) -> RecordDiff | None:
                if cancel.is_set():
                    return None
                return self._process(number, mode, run_id, actor)

            if self._workers == 1:
                outcomes = [task(number) for number in job_numbers]
            else:
                outcomes = self._run_parallel(task, job_numbers)

            not_started = tuple(
                number for number, outcome in zip(job_numbers, outcomes) if outcome is None
            )
            results.extend(o for o in outcomes if o is not None)
            results.sort(key=lambda r: r.job_number)

            report = ReconciliationReport(
                run_id=run_id,
                mode=mode,
                fixed=tuple(r for r in results if r.outcome is RecordOutcome.FIXED),
                skipped=tuple(
                    r for r in results
                    if r.outcome in (RecordOutcome.SKIPPED, RecordOutcome.UNCHANGED)
                ),
                errors=tuple(r for r in results if r.outcome is RecordOutcome.ERROR),
                not_started=not_started,
                cancelled=cancel.is_set(),
                started_at=started_at,
                completed_at=self._clock.now(),
                actor_id=actor,
            )
            logger.info("reconcile_run_completed", extra=report.summary())
        return report

    def _run_parallel(
        self,
        task: Callable[[str], RecordDiff | None],
        job_numbers: list[str],
    ) -> list[RecordDiff | None]:
        context = LogContext.get_all()

        def in_context(number: str) -> RecordDiff | None:
            # contextvars do not follow work onto pool threads
            with LogContext.bind(**context):
                return task(number)

        with ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="reconcile"
        ) as pool:
            return list(pool.map(in_context, job_numbers))

    def _select(self, selector: Selector) -> tuple[list[str], list[str]]:
        """Resolve a selector to existing job numbers plus any unknown ones."""
        with session_scope(self._session_factory) as session:
            stmt = select(JobPricingModel.job_number)
            if selector.job_numbers:
                stmt = stmt.where(JobPricingModel.job_number.in_(selector.job_numbers))
            if selector.modes:
                stmt = stmt.where(JobPricingModel.mode.in_([m.value for m in selector.modes]))
            found = sorted(session.execute(stmt).scalars())
        missing = sorted(set(selector.job_numbers) - set(found))
        return found, missing

    def _process(
        self,
        job_number: str,
        mode: ReconcileMode,
        run_id: str,
        actor: str,
    ) -> RecordDiff:
        with LogContext.bind(job_number=job_number):
            try:
                with session_scope(self._session_factory) as session:
                    result = self._reconcile_record(session, job_number, mode, run_id, actor)
            except PricingKernelError as exc:
                logger.warning(
                    "reconcile_record_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return RecordDiff(
                    job_number=job_number,
                    outcome=RecordOutcome.ERROR,
                    error_code=exc.code,
                    error_message=str(exc),
                )
            except Exception as exc:
                logger.error(
                    "reconcile_record_failed",
                    extra={"error_code": type(exc).__name__, "error": str(exc)},
                    exc_info=True,
                )
                return RecordDiff(
                    job_number=job_number,
                    outcome=RecordOutcome.ERROR,
                    error_code=type(exc).__name__,
                    error_message=str(exc),
                )

            event = (
                "reconcile_record_applied"
                if result.applied
                else f"reconcile_record_{result.outcome.value}"
            )
            logger.info(
                event,
                extra={
                    "outcome": result.outcome.value,
                    "applied": result.applied,
                    "change_count": len(result.changes),
                    "reason": result.reason,
                },
            )
            return result

    def _reconcile_record(
        self,
        session: Session,
        job_number: str,
        mode: ReconcileMode,
        run_id: str,
        actor: str,
    ) -> RecordDiff:
        job = session.execute(
            select(JobPricingModel)
            .where(JobPricingModel.job_number == job_number)
            .with_for_update()
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(job_number)

        invoices = {
            inv.leg: inv
            for inv in session.execute(
                select(InvoiceModel).where(InvoiceModel.job_id == job.id)
            ).scalars()
        }
        purchase_orders = index_purchase_orders(
            session.execute(
                select(PurchaseOrderModel).where(PurchaseOrderModel.job_id == job.id)
            ).scalars()
        )

        customer_invoice = invoices.get(CUSTOMER_INVOICE.name)
        if customer_invoice is not None:
            basis, known_total = CalculationBasis.CUSTOMER_INVOICE, customer_invoice.amount
        elif job.customer_cpm_override is not None:
            basis, known_total = CalculationBasis.QUOTED_CPM, None
        else:
            basis, known_total = CalculationBasis.BASELINE, None

        breakdown = self._engine.allocate(
            quantity=job.quantity,
            mode=job.allocation_mode,
            size_key=job.size_key,
            overrides=stored_overrides(job),
            known_customer_total=known_total,
        )

        changes = diff_job(job, breakdown, self._converter)
        changes += diff_purchase_orders(purchase_orders, breakdown, self._converter)

        validation = self._validator.validate(breakdown)
        if not validation.is_valid:
            first = validation.errors[0]
            return RecordDiff(
                job_number=job_number,
                outcome=RecordOutcome.ERROR,
                changes=tuple(changes),
                findings=validation.errors + validation.warnings,
                basis=basis,
                error_code=first.code,
                error_message=first.message,
            )

        conflicts = []
        for leg in DOWNSTREAM_INVOICE_LEGS:
            invoice = invoices.get(leg.name)
            if invoice is None:
                continue
            computed = leg.expected_amount(breakdown)
            if not self._converter.within_tolerance(invoice.amount, computed):
                error = InvoiceConflictError(
                    job_number, leg.label(self._parties), invoice.amount, computed
                )
                conflicts.append(ValidationFinding(
                    code=error.code,
                    severity=Severity.ERROR,
                    message=str(error),
                    field=f"invoice:{leg.name}",
                    expected=computed,
                    actual=invoice.amount,
                ))
        if conflicts:
            return RecordDiff(
                job_number=job_number,
                outcome=RecordOutcome.SKIPPED,
                changes=tuple(changes),
                findings=tuple(conflicts),
                basis=basis,
                reason="invoice_conflict",
            )

        findings = validation.warnings + validation.annotations
        if not changes:
            return RecordDiff(
                job_number=job_number,
                outcome=RecordOutcome.UNCHANGED,
                findings=findings,
                basis=basis,
                reason="no_changes",
            )

        if mode is ReconcileMode.APPLY:
            apply_changes(job, purchase_orders, changes)
            job.updated_by = actor
            payload = {
                **changes_payload(changes),
                "basis": basis.value,
                "mode": breakdown.mode.value,
                "quantity": breakdown.quantity,
            }
            if self._parties is not None:
                payload["parties"] = self._parties.as_payload()
            session.add(PricingAuditEvent(
                entity_type="JobPricing",
                entity_id=job.id,
                job_number=job_number,
                action=PricingAuditAction.JOB_RECONCILED.value,
                actor_id=actor,
                occurred_at=self._clock.now(),
                run_id=run_id,
                payload=payload,
                payload_hash=hash_payload(payload),
            ))

        return RecordDiff(
            job_number=job_number,
            outcome=RecordOutcome.FIXED,
            changes=tuple(changes),
            findings=findings,
            basis=basis,
            applied=mode is ReconcileMode.APPLY,
        )


def stored_overrides(job: JobPricingModel) -> PricingOverrides | None:
    """Quote and cost overrides saved on the job row, if any."""
    overrides = PricingOverrides(
        customer_cpm=job.customer_cpm_override,
        print_cpm=job.print_cpm_override,
        material_cost_cpm=job.material_cost_cpm_override,
        material_charge_cpm=job.material_charge_cpm_override,
    )
    return None if overrides.is_empty else overrides
