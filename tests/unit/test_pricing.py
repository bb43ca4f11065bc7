"""
Pricing tests: coupon discounts, loyalty redemption and order totals
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from app.application.pricing import (
    LoyaltyPolicy, PricingEngine, calculate_discount, calculate_order_totals, check_coupon,
)
from app.application.shipping_rates import StaticShippingRateTable
from app.domain.errors import CouponError, LoyaltyError
from app.domain.models import Coupon

NOW = datetime(2026, 10, 19, 12, 0)


def coupon(**fields) -> Coupon:
    defaults = dict(id=1, code="TEST1", discount_type="fixed", discount_value=Decimal(1_000),
                    used_count=0, is_active=True)
    defaults.update(fields)
    return Coupon(**defaults)


class StubCoupons:
    def __init__(self, *coupons: Coupon):
        self.coupons = {c.code: c for c in coupons}

    def find_active_by_code(self, code):
        found = self.coupons.get(code)
        return found if found is not None and found.is_active else None


class StubBalances:
    def __init__(self, balance: int):
        self.balance = balance
        self.asked = []

    def get_balance(self, user_id):
        self.asked.append(user_id)
        return self.balance


class TestCouponDiscount:
    """Discount amounts for percentage and fixed coupons"""

    def test_percentage_is_capped_by_max_discount(self):
        save10 = coupon(discount_type="percentage", discount_value=Decimal(10), max_discount=Decimal(5_000))
        assert calculate_discount(save10, Decimal(100_000)) == Decimal(5_000)

    def test_percentage_below_cap(self):
        save10 = coupon(discount_type="percentage", discount_value=Decimal(10), max_discount=Decimal(5_000))
        assert calculate_discount(save10, Decimal(30_000)) == Decimal(3_000)

    def test_percentage_rounds_half_up(self):
        pct = coupon(discount_type="percentage", discount_value=Decimal(15))
        assert calculate_discount(pct, Decimal(1_010)) == Decimal(152)

    def test_percentage_over_hundred_is_clamped(self):
        pct = coupon(discount_type="percentage", discount_value=Decimal(150))
        assert calculate_discount(pct, Decimal(20_000)) == Decimal(20_000)

    def test_fixed_never_exceeds_subtotal(self):
        fixed = coupon(discount_value=Decimal(5_000))
        assert calculate_discount(fixed, Decimal(3_000)) == Decimal(3_000)

    def test_unknown_type_gives_no_discount(self):
        assert calculate_discount(coupon(discount_type="bogus"), Decimal(10_000)) == Decimal(0)


class TestCouponChecks:
    """Coupon eligibility, checked in a fixed order"""

    def test_missing_coupon_is_invalid(self):
        with pytest.raises(CouponError) as exc:
            check_coupon(None, Decimal(10_000), NOW)
        assert exc.value.key == "checkout.coupon.invalidCode"

    def test_expired(self):
        with pytest.raises(CouponError) as exc:
            check_coupon(coupon(expiry_date=NOW - timedelta(days=1)), Decimal(10_000), NOW)
        assert exc.value.key == "checkout.coupon.expired"

    def test_usage_limit_reached(self):
        with pytest.raises(CouponError) as exc:
            check_coupon(coupon(usage_limit=5, used_count=5), Decimal(10_000), NOW)
        assert exc.value.key == "checkout.coupon.usageLimitReached"

    def test_min_order_not_met_carries_amount(self):
        with pytest.raises(CouponError) as exc:
            check_coupon(coupon(min_order_value=Decimal(50_000)), Decimal(10_000), NOW)
        assert exc.value.key == "checkout.coupon.minOrderNotMet"
        assert exc.value.params == {"amount": Decimal(50_000)}

    def test_expiry_is_reported_before_usage(self):
        expired_and_used = coupon(expiry_date=NOW - timedelta(days=1), usage_limit=1, used_count=1)
        with pytest.raises(CouponError) as exc:
            check_coupon(expired_and_used, Decimal(10_000), NOW)
        assert exc.value.key == "checkout.coupon.expired"

    def test_valid_coupon_is_returned(self):
        valid = coupon(expiry_date=NOW + timedelta(days=1), usage_limit=2, used_count=1)
        assert check_coupon(valid, Decimal(10_000), NOW) is valid


class TestLoyaltyPolicy:
    """Earning and redeeming points"""

    policy = LoyaltyPolicy()

    def test_points_earned_per_full_unit(self):
        assert self.policy.points_earned(Decimal(25_500)) == 25
        assert self.policy.points_earned(Decimal(999)) == 0
        assert self.policy.points_earned(Decimal(-10)) == 0

    def test_redemption_discount(self):
        assert self.policy.redemption_discount(200, 500, Decimal(50_000)) == Decimal(10_000)

    def test_non_positive_points_are_invalid(self):
        with pytest.raises(LoyaltyError) as exc:
            self.policy.redemption_discount(0, 500, Decimal(50_000))
        assert exc.value.key == "loyalty.invalidPoints"

    def test_not_enough_points(self):
        with pytest.raises(LoyaltyError) as exc:
            self.policy.redemption_discount(600, 500, Decimal(50_000))
        assert exc.value.key == "loyalty.notEnoughPoints"
        assert exc.value.params == {"balance": 500}

    def test_below_minimum(self):
        with pytest.raises(LoyaltyError) as exc:
            self.policy.redemption_discount(50, 500, Decimal(50_000))
        assert exc.value.key == "loyalty.minRedemption"
        assert exc.value.params == {"points": 100}

    def test_discount_above_remaining_subtotal(self):
        with pytest.raises(LoyaltyError) as exc:
            self.policy.redemption_discount(100, 500, Decimal(1_000))
        assert exc.value.key == "loyalty.maxRedemptionExceeded"
        assert exc.value.params == {"amount": Decimal(1_000)}

    def test_configurable_share_of_subtotal(self):
        half = LoyaltyPolicy(max_redemption_percentage=50)
        with pytest.raises(LoyaltyError):
            half.redemption_discount(200, 500, Decimal(15_000))
        assert half.redemption_discount(100, 500, Decimal(15_000)) == Decimal(5_000)


class TestOrderTotals:
    def test_total_adds_shipping_and_subtracts_discounts(self):
        totals = calculate_order_totals(Decimal(90_000), Decimal(5_000), Decimal(5_000), Decimal(10_000))
        assert totals.total == Decimal(80_000)

    def test_total_never_negative(self):
        totals = calculate_order_totals(Decimal(1_000), Decimal(0), Decimal(2_000))
        assert totals.total == Decimal(0)

    def test_negative_inputs_are_clamped(self):
        totals = calculate_order_totals(Decimal(1_000), Decimal(-500), Decimal(-10))
        assert totals.shipping == Decimal(0)
        assert totals.discount == Decimal(0)
        assert totals.total == Decimal(1_000)


class TestPricingEngine:
    """Coupon, loyalty and shipping stacked together"""

    def engine(self, balance: int = 500, *coupons: Coupon) -> PricingEngine:
        return PricingEngine(
            StubCoupons(*coupons),
            StubBalances(balance),
            StaticShippingRateTable.from_settings(),
            LoyaltyPolicy(),
            clock=lambda: NOW,
        )

    def test_coupon_then_loyalty_then_shipping(self):
        save10 = coupon(code="SAVE10", discount_type="percentage", discount_value=Decimal(10),
                        max_discount=Decimal(5_000))
        result = self.engine(500, save10).price(
            Decimal(90_000), "Baghdad", coupon_code="SAVE10", user_id="u1", loyalty_points=200)

        assert result.totals.discount == Decimal(5_000)
        assert result.totals.loyalty_discount == Decimal(10_000)
        assert result.totals.shipping == Decimal(5_000)
        assert result.totals.total == Decimal(80_000)
        assert result.coupon is save10
        assert result.loyalty_points_used == 200

    def test_loyalty_is_bounded_by_what_the_coupon_left(self):
        fixed = coupon(code="BIGFIX", discount_value=Decimal(9_000))
        with pytest.raises(LoyaltyError) as exc:
            self.engine(500, fixed).price(Decimal(10_000), "Baghdad", coupon_code="BIGFIX",
                                          user_id="u1", loyalty_points=100)
        assert exc.value.params == {"amount": Decimal(1_000)}

    def test_guest_points_are_ignored(self):
        engine = self.engine(500)
        result = engine.price(Decimal(20_000), "Baghdad", user_id=None, loyalty_points=200)
        assert result.totals.loyalty_discount == Decimal(0)
        assert result.loyalty_points_used == 0
        assert engine.balances.asked == []

    def test_free_shipping_at_threshold(self):
        result = self.engine().price(Decimal(100_000), "Baghdad")
        assert result.totals.shipping == Decimal(0)
        assert result.totals.total == Decimal(100_000)

    def test_inactive_coupon_is_invalid(self):
        paused = coupon(code="PAUSED", is_active=False)
        with pytest.raises(CouponError) as exc:
            self.engine(0, paused).price(Decimal(20_000), "Baghdad", coupon_code="PAUSED")
        assert exc.value.key == "checkout.coupon.invalidCode"
