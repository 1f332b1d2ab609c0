"""Unit tests for discount amount calculation."""

from decimal import Decimal

import pytest

from marketplace.pricing.calculator import MalformedDiscountError, compute_amount, floor_amount
from marketplace.pricing.schemas import DiscountCategory
from tests.factories import D, rule

pytestmark = pytest.mark.unit


class TestShippingAmount:
    def test_flat_amount(self):
        assert compute_amount(rule(DiscountCategory.shipping, amount="25"), D("60")) == D("25")

    def test_clamped_to_fee(self):
        assert compute_amount(rule(DiscountCategory.shipping, amount="80"), D("60")) == D("60")

    def test_zero_base(self):
        assert compute_amount(rule(DiscountCategory.shipping, amount="25"), D("0")) == D("0")

    def test_fractional_flat_amount_is_kept(self):
        assert compute_amount(rule(DiscountCategory.shipping, amount="12.50"), D("60")) == D("12.50")


class TestRateAmount:
    def test_cap_applies(self):
        # 550 * 0.10 = 55, capped at 50
        discount = rule(DiscountCategory.seasonal, rate="0.10", cap="50")
        assert compute_amount(discount, D("550")) == D("50")

    def test_under_cap(self):
        discount = rule(DiscountCategory.seasonal, rate="0.10", cap="50")
        assert compute_amount(discount, D("300")) == D("30")

    def test_no_cap(self):
        discount = rule(DiscountCategory.special, rate="0.25")
        assert compute_amount(discount, D("1000")) == D("250")

    @pytest.mark.parametrize(
        "base, rate, expected",
        [
            ("105", "0.10", "10"),     # 10.5 -> 10, never 11
            ("115", "0.10", "11"),     # 11.5 -> 11
            ("199.99", "0.10", "19"),  # 19.999 -> 19
            ("9.99", "0.10", "0"),     # 0.999 -> 0
            ("333", "0.15", "49"),     # 49.95 -> 49
        ],
    )
    def test_floor_at_half_unit_boundaries(self, base, rate, expected):
        discount = rule(DiscountCategory.seasonal, rate=rate)
        assert compute_amount(discount, D(base)) == D(expected)

    def test_fractional_cap_is_floored(self):
        discount = rule(DiscountCategory.seasonal, rate="0.50", cap="12.75")
        assert compute_amount(discount, D("100")) == D("12")

    def test_zero_base(self):
        assert compute_amount(rule(DiscountCategory.seasonal), D("0")) == D("0")


class TestFloorAmount:
    def test_floors_toward_negative_infinity(self):
        assert floor_amount(Decimal("10.99")) == Decimal("10")
        assert floor_amount(Decimal("10.5")) == Decimal("10")
        assert floor_amount(Decimal("10")) == Decimal("10")


class TestMalformed:
    def test_missing_payload_raises(self):
        with pytest.raises(MalformedDiscountError):
            compute_amount(rule(DiscountCategory.seasonal, seasonal=None), D("100"))
