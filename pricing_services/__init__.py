"""
pricing_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure pricing engines
    (pricing_engines/) with database sessions and configuration.  This is
    the only layer that may hold sessions and read configuration at the
    same time.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_pricing_boundaries.py):
        pricing_services/ -> pricing_batch/, pricing_engines/, pricing_kernel/
        pricing_engines/  -> pricing_services/ (FORBIDDEN)
        pricing_kernel/   -> pricing_services/ (FORBIDDEN)
"""

from pricing_services.api import (
    allocate,
    build_converter,
    build_engine,
    reconcile,
    validate,
)
from pricing_services.pricing_service import (
    PricedJob,
    PricingService,
    load_rate_table,
    seed_rate_table,
)

__all__ = [
    "PricedJob",
    "PricingService",
    "allocate",
    "build_converter",
    "build_engine",
    "load_rate_table",
    "reconcile",
    "seed_rate_table",
    "validate",
]
