"""
Errors raised by the order pipeline.

Each error carries a dotted message key and optional interpolation params so
the storefront can localize it. The service facades turn them into
``{"success": False, "error": key, "params": params}`` results.
"""
from typing import Any, Optional


class OrderError(Exception):
    default_key = "checkout.errors.orderFailed"

    def __init__(self, key: Optional[str] = None, params: Optional[dict[str, Any]] = None):
        self.key = key or self.default_key
        self.params = params
        super().__init__(self.key)


class ValidationError(OrderError):
    """Malformed address, coupon code, payment method or admin update."""


class EmptyCartError(OrderError):
    default_key = "checkout.errors.emptyCart"


class CouponError(OrderError):
    default_key = "checkout.coupon.invalidCode"


class LoyaltyError(OrderError):
    default_key = "loyalty.redemptionFailed"


class OrderNumberCollision(OrderError):
    """Every generated order number collided with an existing one."""


class PersistenceError(OrderError):
    """Order or item insert failed after validation passed."""


class OrderNotFoundError(OrderError):
    default_key = "orders.errors.orderNotFound"


class InvalidTransitionError(OrderError):
    default_key = "orders.errors.invalidTransition"


class SideEffectError(OrderError):
    """Email, notification or ledger failure after the order was committed."""
    default_key = "orders.errors.sideEffectFailed"
