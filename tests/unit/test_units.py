"""
Unit tests for total <-> CPM conversion and decimal handling.

Verifies:
- CPM and total scaling against quantity
- ROUND_HALF_UP to cents, 9 places for CPM
- Quantity validation
- Float prohibition
- Tolerance comparisons
"""

from decimal import Decimal

import pytest

from pricing_engines.units import UnitConverter, to_cpm, to_total, validate_quantity
from pricing_kernel.db.types import round_cpm, round_money, to_decimal
from pricing_kernel.exceptions import InvalidQuantityError


class TestToCpm:
    """Tests for total -> rate per thousand."""

    def setup_method(self):
        self.conv = UnitConverter()

    def test_exact_rate(self):
        assert self.conv.to_cpm(Decimal("1603.65"), 15000) == Decimal("106.91")

    def test_rate_carries_nine_places(self):
        assert self.conv.to_cpm(Decimal("100"), 3) == Decimal("33333.333333333")

    def test_accepts_str_and_int(self):
        assert self.conv.to_cpm("450", 15000) == Decimal("30")
        assert self.conv.to_cpm(450, 15000) == Decimal("30")

    def test_module_shortcut(self):
        assert to_cpm(Decimal("450.00"), 15000) == Decimal("30.000000000")


class TestToTotal:
    """Tests for rate per thousand -> whole-cent total."""

    def setup_method(self):
        self.conv = UnitConverter()

    def test_exact_total(self):
        assert self.conv.to_total(Decimal("7.41"), 15000) == Decimal("111.15")

    def test_rounds_to_cents(self):
        assert self.conv.to_total(Decimal("33.333333333"), 3000) == Decimal("100.00")

    def test_half_up(self):
        """A half cent rounds away from zero."""
        assert self.conv.to_total(Decimal("0.005"), 1000) == Decimal("0.01")
        assert self.conv.to_total(Decimal("0.125"), 1000) == Decimal("0.13")

    def test_total_has_two_places(self):
        assert self.conv.to_total(Decimal("106.91"), 15000).as_tuple().exponent == -2

    def test_module_shortcut(self):
        assert to_total("49.18", 15000) == Decimal("737.70")

    def test_quantity_in_thousands(self):
        assert self.conv.quantity_in_thousands(2500) == Decimal("2.5")


class TestQuantityValidation:
    """Quantity must be a positive int."""

    @pytest.mark.parametrize("quantity", [0, -5, 1.5, True, "100", None])
    def test_rejects(self, quantity):
        with pytest.raises(InvalidQuantityError) as exc_info:
            validate_quantity(quantity)
        assert exc_info.value.code == "INVALID_QUANTITY"
        assert exc_info.value.quantity == quantity

    def test_conversion_rejects_zero_quantity(self):
        with pytest.raises(InvalidQuantityError):
            UnitConverter().to_cpm(Decimal("100"), 0)

    def test_accepts_positive(self):
        assert validate_quantity(1) == 1


class TestDecimalHandling:
    """Decimal helpers shared by every engine."""

    def test_float_rejected(self):
        with pytest.raises(TypeError, match="Decimal"):
            to_decimal(1.5)

    def test_float_rejected_by_converter(self):
        with pytest.raises(TypeError):
            UnitConverter().to_total(1.5, 1000)

    def test_round_money_default_cents(self):
        assert round_money(Decimal("35.7615")) == Decimal("35.76")
        assert round_money(Decimal("2.345")) == Decimal("2.35")

    def test_round_cpm_nine_places(self):
        assert round_cpm(Decimal("1") / Decimal("3")) == Decimal("0.333333333")


class TestTolerance:
    """One-cent tolerance comparisons."""

    def setup_method(self):
        self.conv = UnitConverter()

    def test_within_one_cent(self):
        assert self.conv.within_tolerance(Decimal("10.00"), Decimal("10.01"))

    def test_beyond_one_cent(self):
        assert not self.conv.within_tolerance(Decimal("10.00"), Decimal("10.02"))

    def test_pair_consistent(self):
        assert self.conv.pair_consistent(Decimal("111.15"), Decimal("7.41"), 15000)
        assert not self.conv.pair_consistent(Decimal("112.15"), Decimal("7.41"), 15000)

    def test_configured_tolerance(self):
        conv = UnitConverter(tolerance=Decimal("0"))
        assert not conv.within_tolerance(Decimal("10.00"), Decimal("10.01"))
