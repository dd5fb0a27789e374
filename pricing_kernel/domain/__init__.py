"""
Pure domain layer.

No dependencies on the ORM, the database, or I/O.  The only sanctioned time
source is the injected Clock.
"""

from pricing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pricing_kernel.domain.modes import AllocationMode, PartyRole

__all__ = [
    "AllocationMode",
    "Clock",
    "DeterministicClock",
    "PartyRole",
    "SystemClock",
]
