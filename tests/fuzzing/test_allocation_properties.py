"""
Property-based tests for the allocation engine.

Properties:
- Round-trip: to_total(to_cpm(T, q), q) == T for any whole-cent T
- Forward/reverse equivalence: reversing from a forward run's total
  reproduces every field
- Supply and waiver modes carry exactly zero material markup
- Standard and waiver modes split the margin pool 50/50
- Supply mode splits by the configured shares
- Broker plus intermediary recovers the customer total within tolerance
- Engine output never trips the cross-field checks
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from pricing_config import get_active_config
from pricing_engines.allocation import AllocationEngine, PricingOverrides
from pricing_engines.consistency import CROSS_FIELD_MISMATCH, ConsistencyValidator
from pricing_engines.rates import RateTable
from pricing_engines.units import UnitConverter
from pricing_kernel.db.types import ZERO
from pricing_kernel.domain.modes import AllocationMode

_CONFIG = get_active_config()
ENGINE = AllocationEngine(RateTable.from_records(_CONFIG.rates), _CONFIG.policy)
VALIDATOR = ConsistencyValidator(ENGINE.converter)
CONVERTER = UnitConverter()

totals = st.decimals(
    min_value=Decimal("1.00"),
    max_value=Decimal("1000000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
quantities = st.integers(min_value=1, max_value=1_000_000)
# Whole thousands keep every 2-place rate on the grid an exact cent total
thousands = st.integers(min_value=1, max_value=1000).map(lambda k: k * 1000)
sizes = st.sampled_from(ENGINE.rate_table.sizes())
modes = st.sampled_from(list(AllocationMode))
pool_modes = st.sampled_from(
    [AllocationMode.STANDARD, AllocationMode.INTERMEDIARY_WAIVES_MATERIAL_MARGIN]
)
zero_markup_modes = st.sampled_from(
    [AllocationMode.PRINTER_SUPPLIES_MATERIAL, AllocationMode.INTERMEDIARY_WAIVES_MATERIAL_MARGIN]
)
rates = st.decimals(
    min_value=Decimal("1.00"),
    max_value=Decimal("500.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestUnitRoundTrip:

    @given(total=totals, quantity=quantities)
    @settings(max_examples=300)
    def test_total_survives_cpm(self, total, quantity):
        assert CONVERTER.to_total(CONVERTER.to_cpm(total, quantity), quantity) == total


class TestForwardReverseEquivalence:

    @given(size=sizes, quantity=quantities, mode=modes)
    @settings(max_examples=200)
    def test_reverse_of_forward_matches(self, size, quantity, mode):
        forward = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size)
        reverse = ENGINE.allocate(
            quantity=quantity,
            mode=mode,
            size_key=size,
            known_customer_total=forward.customer_total,
        )
        assert reverse.pricing_values() == forward.pricing_values()
        assert reverse.margins() == forward.margins()

    @given(size=sizes, quantity=quantities, mode=modes, customer_cpm=rates)
    @settings(max_examples=200)
    def test_custom_rate_forward_matches_reverse(self, size, quantity, mode, customer_cpm):
        overrides = PricingOverrides(customer_cpm=customer_cpm)
        forward = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size, overrides=overrides)
        reverse = ENGINE.allocate(
            quantity=quantity,
            mode=mode,
            size_key=size,
            overrides=overrides,
            known_customer_total=forward.customer_total,
        )
        assert reverse.pricing_values() == forward.pricing_values()


class TestModeInvariants:

    @given(size=sizes, quantity=quantities, mode=zero_markup_modes, total=totals)
    @settings(max_examples=200)
    def test_zero_markup(self, size, quantity, mode, total):
        b = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size, known_customer_total=total)
        assert b.material_charge_cpm == b.material_cost_cpm
        assert b.intermediary_material_margin_total == ZERO
        assert b.intermediary_total_margin_total == b.intermediary_print_margin_total

    @given(size=sizes, quantity=quantities, mode=pool_modes, total=totals)
    @settings(max_examples=200)
    def test_fifty_fifty(self, size, quantity, mode, total):
        b = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size, known_customer_total=total)
        assert b.broker_margin_cpm == b.intermediary_print_margin_cpm
        assert b.broker_margin_total == b.intermediary_print_margin_total

    @given(size=sizes, quantity=quantities, total=totals)
    @settings(max_examples=200)
    def test_supply_shares(self, size, quantity, total):
        b = ENGINE.allocate(
            quantity=quantity,
            mode=AllocationMode.PRINTER_SUPPLIES_MATERIAL,
            size_key=size,
            known_customer_total=total,
        )
        conv = ENGINE.converter
        assert conv.within_tolerance(b.broker_margin_total, total * Decimal("0.10"))
        assert conv.within_tolerance(b.intermediary_print_margin_total, total * Decimal("0.10"))
        assert conv.within_tolerance(b.printer_total, total * Decimal("0.80"))
        assert conv.within_tolerance(b.intermediary_total, total * Decimal("0.90"))

    @given(size=sizes, quantity=quantities, mode=modes, total=totals)
    @settings(max_examples=200)
    def test_customer_total_recovered(self, size, quantity, mode, total):
        b = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size, known_customer_total=total)
        assert ENGINE.converter.within_tolerance(
            b.broker_margin_total + b.intermediary_total, b.customer_total
        )

    @given(size=sizes, quantity=thousands, mode=modes, total=totals)
    @settings(max_examples=200)
    def test_no_cross_field_findings(self, size, quantity, mode, total):
        b = ENGINE.allocate(quantity=quantity, mode=mode, size_key=size, known_customer_total=total)
        result = VALIDATOR.validate(b)
        assert CROSS_FIELD_MISMATCH not in result.codes
