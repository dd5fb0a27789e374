"""
Module: pricing_engines.allocation
Responsibility: Split a job's customer revenue among broker, intermediary and
    printer under one of the three allocation modes, as totals and CPMs.
Architecture position: Engines.  Pure calculation, zero I/O.  Receives its
    rate table and policy by injection.

Algorithm (one formula path for both directions):
    1. Resolve the cost basis: print, material cost and material charge per
       thousand, from the rate table entry or explicit overrides.
    2. Fix the customer total in cents.
         - reverse: the known (quoted or invoiced) total, as given;
         - forward: to_total(baseline or overridden customer CPM).
       The customer CPM is then always to_cpm(customer_total).  Forward is
       therefore literally a reverse run on the total it produced, and the
       two directions cannot diverge.
    3. Compute every party CPM from the mode's formula:

       mode          charge   pool         broker  int. print  int. total        printer
       STANDARD      table    C - P - Ch   pool/2  pool/2      P + Ch + pool/2   P
       SUPPLIES      cost     -            b*C     m*C         (p + m)*C         p*C
       WAIVES        cost     C - P - M    pool/2  pool/2      P + M + pool/2    P

       (b, m, p are the configured supply-mode shares, 0.10 / 0.10 / 0.80.)
    4. Scale each CPM to a whole-cent total with the unit converter.

Invariants enforced:
    - Broker margin and intermediary print margin share one rounded CPM in
      STANDARD and WAIVES modes, so the 50/50 split is exact in both CPM and
      total.
    - Material markup is exactly zero in SUPPLIES and WAIVES modes, and the
      intermediary's total margin equals its print margin there.
    - Every total equals to_total(its CPM).

Failure modes:
    - InvalidQuantityError: quantity is not a positive int.
    - UnknownSizeError: no rate entry and overrides do not cover the costs
      (the missing override names are carried on the exception).
    - InvalidModeError: unrecognised mode tag.

Audit relevance:
    allocate() is traced: each call emits PRICING_ENGINE_TRACE with an input
    fingerprint, so a stored breakdown can be tied to the inputs that
    produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum

from pricing_config.schema import AllocationPolicy
from pricing_engines.rates import RateTable, RateTableEntry
from pricing_engines.tracer import traced_engine
from pricing_engines.undercharge import UnderchargeDetector, UnderchargeResult
from pricing_engines.units import UnitConverter, validate_quantity
from pricing_kernel.db.types import ZERO, to_decimal
from pricing_kernel.domain.fields import PRICING_FIELDS, cpm_column, total_column
from pricing_kernel.domain.modes import AllocationMode
from pricing_kernel.exceptions import UnknownSizeError
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

ENGINE_NAME = "allocation"
ENGINE_VERSION = "1.0"

_TWO = Decimal("2")


class CalculationDirection(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"


@dataclass(frozen=True)
class PricingOverrides:
    """
    Manually entered rates that replace rate table values.

    Any field left as None falls back to the rate table entry.  With no
    entry, print_cpm and material_cost_cpm are required; material_charge_cpm
    defaults to the cost.
    """

    customer_cpm: Decimal | None = None
    print_cpm: Decimal | None = None
    material_cost_cpm: Decimal | None = None
    material_charge_cpm: Decimal | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class Breakdown:
    """
    Complete allocation of one job.

    Each priced field is carried as a total and a CPM; pricing_values() keys
    them by the stored column names.
    """

    quantity: int
    mode: AllocationMode
    direction: CalculationDirection
    size_key: str | None

    customer_total: Decimal
    customer_cpm: Decimal
    broker_margin_total: Decimal
    broker_margin_cpm: Decimal
    intermediary_total: Decimal
    intermediary_cpm: Decimal
    intermediary_print_margin_total: Decimal
    intermediary_print_margin_cpm: Decimal
    intermediary_material_margin_total: Decimal
    intermediary_material_margin_cpm: Decimal
    intermediary_total_margin_total: Decimal
    intermediary_total_margin_cpm: Decimal
    printer_total: Decimal
    printer_cpm: Decimal
    material_cost_total: Decimal
    material_cost_cpm: Decimal
    material_charge_total: Decimal
    material_charge_cpm: Decimal

    # Printer's quoted print rate (the cost basis, not necessarily what it is paid)
    print_cpm: Decimal
    # None in supply mode, where the split is by fixed shares
    margin_pool_cpm: Decimal | None = None
    margin_pool_total: Decimal | None = None

    paper_weight_per_m: Decimal | None = None
    paper_weight_total: Decimal | None = None
    paper_type: str | None = None

    standard_customer_cpm: Decimal | None = None
    is_custom_pricing: bool = False
    undercharge: UnderchargeResult | None = field(default=None, compare=False)

    @property
    def material_markup_cpm(self) -> Decimal:
        return self.material_charge_cpm - self.material_cost_cpm

    @property
    def material_markup_total(self) -> Decimal:
        return self.material_charge_total - self.material_cost_total

    @property
    def requires_approval(self) -> bool:
        return self.undercharge is not None and self.undercharge.requires_approval

    def pricing_values(self) -> dict[str, Decimal]:
        """Every total and CPM keyed by stored column name."""
        values: dict[str, Decimal] = {}
        for name in PRICING_FIELDS:
            values[total_column(name)] = getattr(self, total_column(name))
            values[cpm_column(name)] = getattr(self, cpm_column(name))
        return values

    def margins(self) -> dict[str, Decimal]:
        """The margin totals only; what forward/reverse equivalence compares."""
        return {
            "broker_margin_total": self.broker_margin_total,
            "intermediary_print_margin_total": self.intermediary_print_margin_total,
            "intermediary_material_margin_total": self.intermediary_material_margin_total,
            "intermediary_total_margin_total": self.intermediary_total_margin_total,
            "intermediary_total": self.intermediary_total,
            "printer_total": self.printer_total,
        }


@dataclass(frozen=True)
class _CostBasis:
    print_cpm: Decimal
    material_cost_cpm: Decimal
    material_charge_cpm: Decimal
    baseline_customer_cpm: Decimal | None


class AllocationEngine:
    """
    Mode-dispatching allocation core.

    Usage:
        engine = AllocationEngine(rate_table, policy)
        breakdown = engine.allocate(
            quantity=15000,
            mode=AllocationMode.STANDARD,
            size_key="9 3/4 x 22 1/8",
        )
    """

    def __init__(
        self,
        rate_table: RateTable,
        policy: AllocationPolicy | None = None,
        converter: UnitConverter | None = None,
        detector: UnderchargeDetector | None = None,
    ):
        self._rates = rate_table
        self._policy = policy or AllocationPolicy()
        self._converter = converter or UnitConverter(
            money_decimal_places=self._policy.money_decimal_places,
            cpm_decimal_places=self._policy.cpm_decimal_places,
            tolerance=self._policy.tolerance,
        )
        self._detector = detector or UnderchargeDetector(self._converter)

    @property
    def converter(self) -> UnitConverter:
        return self._converter

    @property
    def rate_table(self) -> RateTable:
        return self._rates

    @property
    def policy(self) -> AllocationPolicy:
        return self._policy

    @traced_engine(
        ENGINE_NAME,
        ENGINE_VERSION,
        fingerprint_fields=(
            "quantity",
            "mode",
            "size_key",
            "overrides",
            "known_customer_total",
        ),
    )
    def allocate(
        self,
        *,
        quantity: int,
        mode: AllocationMode | str,
        size_key: str | None = None,
        overrides: PricingOverrides | None = None,
        known_customer_total: Decimal | int | str | None = None,
    ) -> Breakdown:
        """
        Allocate one job.

        Forward when known_customer_total is None, reverse otherwise.

        Raises:
            InvalidQuantityError, UnknownSizeError, InvalidModeError
        """
        validate_quantity(quantity)
        resolved_mode = AllocationMode.parse(mode)
        overrides = overrides or PricingOverrides()
        entry = self._rates.get(size_key)
        basis = self._resolve_cost_basis(size_key, entry, overrides)

        conv = self._converter
        if known_customer_total is not None:
            direction = CalculationDirection.REVERSE
            customer_total = conv.round_total(to_decimal(known_customer_total))
        else:
            direction = CalculationDirection.FORWARD
            if basis.baseline_customer_cpm is None:
                raise UnknownSizeError(size_key, ("customer_cpm",))
            customer_total = conv.to_total(basis.baseline_customer_cpm, quantity)
        customer_cpm = conv.to_cpm(customer_total, quantity)

        cpms = self._split(resolved_mode, customer_cpm, basis)
        breakdown = self._build(
            quantity=quantity,
            mode=resolved_mode,
            direction=direction,
            size_key=entry.size_key if entry is not None else size_key,
            customer_total=customer_total,
            cpms=cpms,
            basis=basis,
            entry=entry,
            is_custom_pricing=not overrides.is_empty,
        )

        logger.debug(
            "allocation_completed",
            extra={
                "mode": resolved_mode.value,
                "direction": direction.value,
                "quantity": quantity,
                "size_key": breakdown.size_key,
                "customer_total": str(breakdown.customer_total),
                "broker_margin_total": str(breakdown.broker_margin_total),
                "requires_approval": breakdown.requires_approval,
            },
        )
        return breakdown

    # ------------------------------------------------------------------

    def _resolve_cost_basis(
        self,
        size_key: str | None,
        entry: RateTableEntry | None,
        overrides: PricingOverrides,
    ) -> _CostBasis:
        print_cpm = overrides.print_cpm
        material_cost = overrides.material_cost_cpm
        material_charge = overrides.material_charge_cpm
        customer_cpm = overrides.customer_cpm

        if entry is not None:
            print_cpm = entry.print_cpm if print_cpm is None else print_cpm
            material_cost = entry.material_cost_cpm if material_cost is None else material_cost
            material_charge = entry.paper_charge_cpm if material_charge is None else material_charge
            customer_cpm = entry.standard_customer_cpm if customer_cpm is None else customer_cpm
        else:
            missing = tuple(
                name
                for name, value in (
                    ("print_cpm", print_cpm),
                    ("material_cost_cpm", material_cost),
                )
                if value is None
            )
            if missing:
                raise UnknownSizeError(size_key, missing)
            if material_charge is None:
                material_charge = material_cost

        return _CostBasis(
            print_cpm=to_decimal(print_cpm),
            material_cost_cpm=to_decimal(material_cost),
            material_charge_cpm=to_decimal(material_charge),
            baseline_customer_cpm=to_decimal(customer_cpm) if customer_cpm is not None else None,
        )

    def _split(
        self,
        mode: AllocationMode,
        customer_cpm: Decimal,
        basis: _CostBasis,
    ) -> dict[str, Decimal | None]:
        """Per-mode CPM formulas.  The only place the modes differ."""
        round_cpm = self._converter.round_cpm
        P = basis.print_cpm
        M = basis.material_cost_cpm

        if mode is AllocationMode.PRINTER_SUPPLIES_MATERIAL:
            policy = self._policy
            intermediary_margin = round_cpm(customer_cpm * policy.supply_intermediary_margin_share)
            return {
                "material_charge": M,
                "margin_pool": None,
                "broker_margin": round_cpm(customer_cpm * policy.supply_broker_share),
                "intermediary_print_margin": intermediary_margin,
                "intermediary_material_margin": ZERO,
                "intermediary_total_margin": intermediary_margin,
                "intermediary": round_cpm(customer_cpm * policy.supply_intermediary_share),
                "printer": round_cpm(customer_cpm * policy.supply_printer_share),
            }

        if mode is AllocationMode.INTERMEDIARY_WAIVES_MATERIAL_MARGIN:
            charge = M
            markup = ZERO
        else:
            charge = basis.material_charge_cpm
            markup = charge - M

        pool = customer_cpm - P - charge
        half = round_cpm(pool / _TWO)
        return {
            "material_charge": charge,
            "margin_pool": pool,
            "broker_margin": half,
            "intermediary_print_margin": half,
            "intermediary_material_margin": markup,
            "intermediary_total_margin": half + markup,
            "intermediary": P + charge + half,
            "printer": P,
        }

    def _build(
        self,
        *,
        quantity: int,
        mode: AllocationMode,
        direction: CalculationDirection,
        size_key: str | None,
        customer_total: Decimal,
        cpms: dict[str, Decimal | None],
        basis: _CostBasis,
        entry: RateTableEntry | None,
        is_custom_pricing: bool,
    ) -> Breakdown:
        conv = self._converter

        def pair(cpm: Decimal) -> tuple[Decimal, Decimal]:
            rate = conv.round_cpm(cpm)
            return conv.to_total(rate, quantity), rate

        customer_cpm = conv.to_cpm(customer_total, quantity)
        broker_total, broker_cpm = pair(cpms["broker_margin"])
        int_total, int_cpm = pair(cpms["intermediary"])
        ipm_total, ipm_cpm = pair(cpms["intermediary_print_margin"])
        imm_total, imm_cpm = pair(cpms["intermediary_material_margin"])
        itm_total, itm_cpm = pair(cpms["intermediary_total_margin"])
        printer_total, printer_cpm = pair(cpms["printer"])
        cost_total, cost_cpm = pair(basis.material_cost_cpm)
        charge_total, charge_cpm = pair(cpms["material_charge"])

        pool_cpm = cpms["margin_pool"]
        pool_total = None
        if pool_cpm is not None:
            pool_total, pool_cpm = pair(pool_cpm)

        weight_per_m = entry.paper_weight_per_m if entry is not None else None
        weight_total = (
            conv.round_total(weight_per_m * conv.quantity_in_thousands(quantity))
            if weight_per_m is not None
            else None
        )

        undercharge = (
            self._detector.detect(customer_cpm, entry, quantity)
            if entry is not None
            else None
        )

        return Breakdown(
            quantity=quantity,
            mode=mode,
            direction=direction,
            size_key=size_key,
            customer_total=customer_total,
            customer_cpm=customer_cpm,
            broker_margin_total=broker_total,
            broker_margin_cpm=broker_cpm,
            intermediary_total=int_total,
            intermediary_cpm=int_cpm,
            intermediary_print_margin_total=ipm_total,
            intermediary_print_margin_cpm=ipm_cpm,
            intermediary_material_margin_total=imm_total,
            intermediary_material_margin_cpm=imm_cpm,
            intermediary_total_margin_total=itm_total,
            intermediary_total_margin_cpm=itm_cpm,
            printer_total=printer_total,
            printer_cpm=printer_cpm,
            material_cost_total=cost_total,
            material_cost_cpm=cost_cpm,
            material_charge_total=charge_total,
            material_charge_cpm=charge_cpm,
            print_cpm=conv.round_cpm(basis.print_cpm),
            margin_pool_cpm=pool_cpm,
            margin_pool_total=pool_total,
            paper_weight_per_m=weight_per_m,
            paper_weight_total=weight_total,
            paper_type=entry.paper_type if entry is not None else None,
            standard_customer_cpm=entry.standard_customer_cpm if entry is not None else None,
            is_custom_pricing=is_custom_pricing,
            undercharge=undercharge,
        )
