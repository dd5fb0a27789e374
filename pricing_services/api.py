"""
pricing_services.api -- Module-level entry points for callers outside the stack.

Responsibility:
    Wire configuration, rate table, engine, validator and runner together so
    that a caller can price, validate or reconcile without assembling the
    object graph itself.  Every function accepts explicit collaborators for
    tests; omitted ones are built from ``get_active_config()``.

Architecture position:
    Services.  The only layer that both reads configuration and holds
    sessions.

Usage:
    breakdown = allocate(15000, "9 3/4 x 22 1/8", AllocationMode.STANDARD)
    result = validate(breakdown)
    report = reconcile(Selector.jobs("J-1001"), ReconcileMode.APPLY)
"""

from __future__ import annotations

import threading
from decimal import Decimal

from sqlalchemy.orm import Session, sessionmaker

from pricing_batch.runner import ReconciliationRunner
from pricing_batch.types import ReconcileMode, ReconciliationReport, Selector
from pricing_config import PricingConfig, get_active_config
from pricing_engines.allocation import AllocationEngine, Breakdown, PricingOverrides
from pricing_engines.consistency import ConsistencyValidator, ValidationResult
from pricing_engines.rates import RateTable
from pricing_engines.units import UnitConverter
from pricing_kernel.db.engine import get_session_factory, session_scope
from pricing_kernel.domain.clock import Clock
from pricing_kernel.domain.modes import AllocationMode
from pricing_services.pricing_service import load_rate_table


def build_engine(
    config: PricingConfig | None = None,
    rate_table: RateTable | None = None,
) -> AllocationEngine:
    """
    An allocation engine for ``config`` (default: the active configuration).

    ``rate_table`` replaces the configuration's baseline grid, typically
    with rows loaded through ``load_rate_table()``.
    """
    config = config or get_active_config()
    if rate_table is None:
        rate_table = RateTable.from_records(config.rates)
    return AllocationEngine(rate_table, config.policy)


def build_converter(config: PricingConfig | None = None) -> UnitConverter:
    """Unit converter with the policy's tolerance and decimal places."""
    policy = (config or get_active_config()).policy
    return UnitConverter(
        money_decimal_places=policy.money_decimal_places,
        cpm_decimal_places=policy.cpm_decimal_places,
        tolerance=policy.tolerance,
    )


def allocate(
    quantity: int,
    size_key: str | None = None,
    mode: AllocationMode | str = AllocationMode.STANDARD,
    *,
    overrides: PricingOverrides | None = None,
    known_customer_total: Decimal | int | str | None = None,
    engine: AllocationEngine | None = None,
) -> Breakdown:
    """Allocate one job.  Raises the engine's typed errors."""
    engine = engine or build_engine()
    return engine.allocate(
        quantity=quantity,
        mode=mode,
        size_key=size_key,
        overrides=overrides,
        known_customer_total=known_customer_total,
    )


def validate(
    breakdown: Breakdown,
    validator: ConsistencyValidator | None = None,
    *,
    config: PricingConfig | None = None,
) -> ValidationResult:
    """Validate with the active policy's tolerance and precision unless ``validator`` is given."""
    if validator is None:
        validator = ConsistencyValidator(build_converter(config))
    return validator.validate(breakdown)


def reconcile(
    selector: Selector | None = None,
    mode: ReconcileMode | str = ReconcileMode.DRY_RUN,
    *,
    session_factory: sessionmaker[Session] | None = None,
    engine: AllocationEngine | None = None,
    config: PricingConfig | None = None,
    workers: int | None = None,
    actor_id: str | None = None,
    cancel_event: threading.Event | None = None,
    clock: Clock | None = None,
) -> ReconciliationReport:
    """
    Run one reconciliation pass.

    Uses the globally initialised database engine unless ``session_factory``
    is given.  Without an explicit ``engine`` the persisted rate grid is
    loaded (falling back to the configuration baseline), as the CLI does.
    ``workers`` and ``actor_id`` default to the configuration's
    reconciliation section; party ids always come from the configuration.
    """
    config = config or get_active_config()
    session_factory = session_factory or get_session_factory()
    if engine is None:
        with session_scope(session_factory) as session:
            engine = build_engine(config, load_rate_table(session, config.rates))
    runner = ReconciliationRunner(
        session_factory,
        engine,
        clock=clock,
        workers=workers if workers is not None else config.reconciliation.workers,
        actor_id=actor_id or config.reconciliation.actor,
        parties=config.parties,
    )
    return runner.run(selector, ReconcileMode(mode), cancel_event=cancel_event)
