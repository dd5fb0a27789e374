"""
Pricing configuration schema.

Frozen dataclasses the loader parses YAML into.  The engines and the batch
runner receive these objects; they never read YAML or environment variables
themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pricing_kernel.domain.modes import PartyRole


@dataclass(frozen=True)
class PartyConfig:
    """External identifiers of the fixed parties on every job."""

    broker_id: str
    intermediary_id: str
    printer_id: str

    def party_id(self, role: PartyRole) -> str | None:
        """Configured id for a role; the customer differs per job and has none."""
        return {
            PartyRole.BROKER: self.broker_id,
            PartyRole.INTERMEDIARY: self.intermediary_id,
            PartyRole.PRINTER: self.printer_id,
        }.get(PartyRole(role))

    def as_payload(self) -> dict[str, str]:
        return {
            PartyRole.BROKER.value: self.broker_id,
            PartyRole.INTERMEDIARY.value: self.intermediary_id,
            PartyRole.PRINTER.value: self.printer_id,
        }


@dataclass(frozen=True)
class AllocationPolicy:
    """
    Numeric policy for the allocation engine.

    Supply mode splits customer revenue by fixed shares.  The intermediary's
    total share is derived: what it pays the printer plus its own margin.
    """

    supply_broker_share: Decimal = Decimal("0.10")
    supply_intermediary_margin_share: Decimal = Decimal("0.10")
    supply_printer_share: Decimal = Decimal("0.80")
    tolerance: Decimal = Decimal("0.01")
    cpm_decimal_places: int = 9
    money_decimal_places: int = 2

    @property
    def supply_intermediary_share(self) -> Decimal:
        return self.supply_printer_share + self.supply_intermediary_margin_share


@dataclass(frozen=True)
class RateDef:
    """One baseline rate grid row as authored in YAML."""

    size_key: str
    print_cpm: Decimal
    paper_weight_per_m: Decimal
    paper_cost_per_lb: Decimal
    paper_charge_cpm: Decimal
    standard_customer_cpm: Decimal
    minimum_customer_cpm: Decimal | None = None
    paper_type: str | None = None


@dataclass(frozen=True)
class ReconciliationDefaults:
    """Defaults for the batch reconciliation CLI."""

    workers: int = 4
    actor: str = "pricing-reconciler"


@dataclass(frozen=True)
class PricingConfig:
    """The runtime configuration artifact returned by get_active_config()."""

    config_id: str
    version: int
    parties: PartyConfig
    policy: AllocationPolicy
    rates: tuple[RateDef, ...] = ()
    reconciliation: ReconciliationDefaults = field(default_factory=ReconciliationDefaults)
    database_url: str | None = None
    checksum: str = ""
