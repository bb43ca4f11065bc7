"""
Checkout pricing: coupon and loyalty discounts, shipping, totals.

The calculation functions are pure; ``PricingEngine`` wires them to the coupon
lookup, the loyalty balance and the shipping rate table.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Callable, Optional, Protocol

from app.core_settings import Settings, get_settings
from app.domain.catalog import as_utc
from app.domain.errors import CouponError, LoyaltyError
from app.domain.models import Coupon
from .shipping_rates import ShippingRateTable, calculate_shipping_cost

ZERO = Decimal(0)
MAX_COUPON_PERCENTAGE = Decimal(100)


class CouponLookup(Protocol):
    def find_active_by_code(self, code: str) -> Optional[Coupon]: ...


class PointsBalanceLookup(Protocol):
    def get_balance(self, user_id: str) -> int: ...


def round_half_up(value: Decimal) -> Decimal:
    return value.quantize(Decimal(1), rounding=ROUND_HALF_UP)


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    safe_subtotal = max(ZERO, Decimal(subtotal))
    value = Decimal(coupon.discount_value)

    if coupon.discount_type == "percentage":
        percentage = min(value, MAX_COUPON_PERCENTAGE)
        discount = round_half_up(safe_subtotal * percentage / 100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
        return discount

    if coupon.discount_type == "fixed":
        return min(round_half_up(value), safe_subtotal)

    return ZERO


def check_coupon(coupon: Optional[Coupon], subtotal: Decimal, now: datetime) -> Coupon:
    """Raises CouponError unless the (active) coupon can be applied to subtotal."""
    if coupon is None:
        raise CouponError("checkout.coupon.invalidCode")

    if coupon.expiry_date is not None and as_utc(coupon.expiry_date) < as_utc(now):
        raise CouponError("checkout.coupon.expired")

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponError("checkout.coupon.usageLimitReached")

    if coupon.min_order_value is not None and subtotal < coupon.min_order_value:
        raise CouponError("checkout.coupon.minOrderNotMet", {"amount": coupon.min_order_value})

    return coupon


@dataclass(frozen=True)
class LoyaltyPolicy:
    points_per_unit: int = 1
    earn_unit: int = 1_000
    redemption_rate: int = 50
    min_redemption: int = 100
    max_redemption_percentage: int = 100

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LoyaltyPolicy":
        settings = settings or get_settings()
        return cls(
            points_per_unit=settings.LOYALTY_POINTS_PER_UNIT,
            earn_unit=settings.LOYALTY_EARN_UNIT,
            redemption_rate=settings.LOYALTY_REDEMPTION_RATE,
            min_redemption=settings.LOYALTY_MIN_REDEMPTION,
            max_redemption_percentage=settings.LOYALTY_MAX_REDEMPTION_PERCENTAGE,
        )

    def points_earned(self, net_spend: Decimal) -> int:
        if net_spend <= 0:
            return 0
        return int(Decimal(net_spend) // self.earn_unit) * self.points_per_unit

    def points_discount(self, points: int) -> Decimal:
        return Decimal(int(points) * self.redemption_rate)

    def redemption_discount(self, points: int, balance: int, remaining_subtotal: Decimal) -> Decimal:
        """Validates a redemption and returns the discount it is worth."""
        if points <= 0:
            raise LoyaltyError("loyalty.invalidPoints")
        if points > balance:
            raise LoyaltyError("loyalty.notEnoughPoints", {"balance": balance})
        if points < self.min_redemption:
            raise LoyaltyError("loyalty.minRedemption", {"points": self.min_redemption})

        discount = self.points_discount(points)
        ceiling = (Decimal(remaining_subtotal) * self.max_redemption_percentage / 100).quantize(
            Decimal(1), rounding=ROUND_FLOOR)
        if discount > ceiling:
            raise LoyaltyError("loyalty.maxRedemptionExceeded", {"amount": ceiling})

        return min(discount, remaining_subtotal)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping: Decimal
    discount: Decimal
    loyalty_discount: Decimal
    total: Decimal


def calculate_order_totals(
    subtotal: Decimal,
    shipping: Decimal,
    discount: Decimal,
    loyalty_discount: Decimal = ZERO,
) -> OrderTotals:
    safe_subtotal = max(ZERO, Decimal(subtotal))
    safe_shipping = max(ZERO, Decimal(shipping))
    safe_discount = max(ZERO, Decimal(discount))
    safe_loyalty = max(ZERO, Decimal(loyalty_discount))
    total = max(ZERO, safe_subtotal + safe_shipping - safe_discount - safe_loyalty)
    return OrderTotals(
        subtotal=safe_subtotal,
        shipping=safe_shipping,
        discount=safe_discount,
        loyalty_discount=safe_loyalty,
        total=total,
    )


@dataclass(frozen=True)
class PricingResult:
    totals: OrderTotals
    coupon: Optional[Coupon]
    loyalty_points_used: int


class PricingEngine:
    def __init__(
        self,
        coupons: CouponLookup,
        balances: PointsBalanceLookup,
        shipping_rates: ShippingRateTable,
        loyalty: LoyaltyPolicy,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.coupons = coupons
        self.balances = balances
        self.shipping_rates = shipping_rates
        self.loyalty = loyalty
        self.clock = clock

    def validate_coupon(self, code: str, subtotal: Decimal) -> Coupon:
        return check_coupon(self.coupons.find_active_by_code(code), subtotal, self.clock())

    def apply_coupon(self, code: str, subtotal: Decimal) -> tuple[Coupon, Decimal]:
        coupon = self.validate_coupon(code, subtotal)
        return coupon, calculate_discount(coupon, subtotal)

    def loyalty_discount(self, user_id: str, points: int, remaining_subtotal: Decimal) -> Decimal:
        balance = self.balances.get_balance(user_id)
        return self.loyalty.redemption_discount(points, balance, remaining_subtotal)

    def shipping_cost(self, governorate: str, subtotal: Decimal) -> Decimal:
        return calculate_shipping_cost(self.shipping_rates, governorate, subtotal)

    def price(
        self,
        subtotal: Decimal,
        governorate: str,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
        loyalty_points: int = 0,
    ) -> PricingResult:
        """Coupon first, then loyalty against what the coupon left, then shipping."""
        coupon = None
        discount = ZERO
        if coupon_code:
            coupon, discount = self.apply_coupon(coupon_code, subtotal)

        # Guests cannot redeem, whatever they send
        points = int(loyalty_points) if user_id else 0
        loyalty_discount = ZERO
        if points > 0:
            remaining = max(ZERO, subtotal - discount)
            loyalty_discount = self.loyalty_discount(user_id, points, remaining)

        shipping = self.shipping_cost(governorate, subtotal)
        totals = calculate_order_totals(subtotal, shipping, discount, loyalty_discount)
        return PricingResult(totals=totals, coupon=coupon, loyalty_points_used=max(0, points))
