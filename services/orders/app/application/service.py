from sqlalchemy.orm import Session
from decimal import Decimal
from typing import Callable, Optional, Union

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt

from app.core_settings import Settings, get_settings
from app.domain.errors import EmptyCartError, OrderError, OrderNumberCollision, PersistenceError, ValidationError
from app.domain.models import Order
from app.domain.status import OrderStatus
from app.infrastructure.repositories import (
    CartRepository, CouponRepository, InsertConflict, InsertFailed, InsertOk, LoyaltyLedger, OrderRepository,
)
from shared.core import get_logger
from .cart_resolver import CartResolver, ResolvedCart
from .effects import CommittedOrder, PostOrderEffects
from .order_numbers import generate_order_number
from .ports import CatalogSource, EmailSender, NotificationSink
from .pricing import LoyaltyPolicy, PricingEngine, PricingResult
from .schemas import CheckoutRequest, CheckoutResult, CouponApplyResult
from .shipping_rates import ShippingRateTable, format_delivery_estimate
from .validation import validate_checkout_data, validate_coupon_code

logger = get_logger(__name__)

LOCALES = ("en", "ar")


def resolve_locale(value: Optional[str], fallback: str = "en") -> str:
    return value if value in LOCALES else fallback


class CheckoutService:
    """Turns a cart into an order: resolve, price, number + persist, then side effects."""

    def __init__(
        self,
        db: Session,
        catalog: CatalogSource,
        emails: EmailSender,
        notifications: NotificationSink,
        shipping_rates: ShippingRateTable,
        settings: Optional[Settings] = None,
        number_generator: Callable[[], str] = generate_order_number,
    ):
        self.settings = settings or get_settings()
        self.orders = OrderRepository(db)
        self.carts = CartRepository(db)
        self.coupons = CouponRepository(db)
        self.ledger = LoyaltyLedger(db)
        self.shipping_rates = shipping_rates
        self.loyalty = LoyaltyPolicy.from_settings(self.settings)
        self.cart_resolver = CartResolver(self.carts, catalog)
        self.pricing = PricingEngine(self.coupons, self.ledger, shipping_rates, self.loyalty)
        self.effects = PostOrderEffects(self.coupons, self.ledger, emails, notifications, self.loyalty)
        self.number_generator = number_generator

    def apply_coupon(self, code: str, subtotal: Decimal) -> CouponApplyResult:
        try:
            normalized = validate_coupon_code(code)
            _, discount = self.pricing.apply_coupon(normalized, subtotal)
        except OrderError as e:
            return CouponApplyResult(success=False, error=e.key, params=e.params)
        return CouponApplyResult(success=True, discount=discount)

    def create_order(self, data: CheckoutRequest, user_id: Optional[str] = None) -> CheckoutResult:
        locale = resolve_locale(data.locale)
        try:
            validate_checkout_data(data, is_guest=user_id is None)
            resolved = self.cart_resolver.resolve(user_id=user_id, guest_items=data.items)
            if resolved.subtotal <= 0:
                raise EmptyCartError()
            coupon_code = validate_coupon_code(data.coupon_code) if data.coupon_code else None
            pricing = self.pricing.price(
                resolved.subtotal,
                data.shipping_address.governorate,
                coupon_code=coupon_code,
                user_id=user_id,
                loyalty_points=data.loyalty_points or 0,
            )
            inserted = self._insert_with_unique_number(self._order_fields(data, user_id, locale, pricing),
                                                       resolved)
        except OrderError as e:
            if not isinstance(e, ValidationError):
                logger.info(f"Checkout rejected: {e.key}", extra={'extra_fields': {'user_id': user_id}})
            return CheckoutResult(success=False, error=e.key, params=e.params)
        except Exception:
            logger.error("Failed to create order", exc_info=True, extra={'extra_fields': {'user_id': user_id}})
            return CheckoutResult(success=False, error="checkout.errors.orderFailed")

        order = inserted.order
        logger.info(
            f"Order created {order.order_number}",
            extra={'extra_fields': {'order_id': order.id, 'total': str(order.total), 'guest': user_id is None}}
        )

        if resolved.cart_id is not None:
            self._close_cart(resolved.cart_id, order)

        self.effects.run(CommittedOrder(
            order=order,
            items=inserted.items,
            totals=pricing.totals,
            locale=locale,
            delivery_estimate=format_delivery_estimate(self.shipping_rates, data.shipping_address.governorate,
                                                       locale),
            user_id=user_id,
            coupon_id=pricing.coupon.id if pricing.coupon is not None else None,
            loyalty_points_used=pricing.loyalty_points_used,
        ))

        return CheckoutResult(success=True, order_id=order.id, order_number=order.order_number)

    def get_order_for_confirmation(self, order_number: str) -> Optional[Order]:
        if not order_number:
            return None
        return self.orders.get_by_number(order_number)

    def _order_fields(self, data: CheckoutRequest, user_id: Optional[str], locale: str,
                      pricing: PricingResult) -> dict:
        totals = pricing.totals
        return {
            "user_id": user_id,
            "guest_email": data.guest_email.strip() if data.guest_email else None,
            "shipping_address_id": data.shipping_address_id,
            "shipping_address": data.shipping_address.model_dump(),
            "payment_method": data.payment_method,
            "status": OrderStatus.PENDING.value,
            "subtotal": totals.subtotal,
            "shipping_cost": totals.shipping,
            "discount": totals.discount,
            "loyalty_discount": totals.loyalty_discount,
            "loyalty_points_used": pricing.loyalty_points_used,
            "total": totals.total,
            "coupon_code": pricing.coupon.code if pricing.coupon is not None else None,
            "notes": data.notes,
            "locale": locale,
        }

    def _insert_with_unique_number(self, fields: dict, resolved: ResolvedCart) -> InsertOk:
        """Only order-number conflicts are retried; any other insert failure ends the checkout."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.ORDER_NUMBER_MAX_ATTEMPTS),
            retry=retry_if_result(lambda result: isinstance(result, InsertConflict)),
            before_sleep=self._log_collision,
            retry_error_callback=self._give_up_on_numbers,
        )
        return retrying(self._insert_once, fields, resolved)

    def _insert_once(self, fields: dict, resolved: ResolvedCart) -> Union[InsertOk, InsertConflict]:
        order_number = self.number_generator()
        result = self.orders.insert_order(fields, order_number, resolved.items)
        if isinstance(result, InsertFailed):
            logger.error(
                f"Order insert failed at {result.stage}",
                exc_info=result.error,
                extra={'extra_fields': {'order_number': order_number, 'stage': result.stage}}
            )
            raise PersistenceError()
        return result

    @staticmethod
    def _log_collision(retry_state: RetryCallState) -> None:
        conflict = retry_state.outcome.result()
        logger.warning(
            "Order number collision, regenerating",
            extra={'extra_fields': {'order_number': conflict.order_number, 'attempt': retry_state.attempt_number}}
        )

    @staticmethod
    def _give_up_on_numbers(retry_state: RetryCallState) -> InsertOk:
        logger.error(
            "Failed to create order after retries",
            extra={'extra_fields': {'attempts': retry_state.attempt_number}}
        )
        raise OrderNumberCollision()

    def _close_cart(self, cart_id: int, order: Order) -> None:
        try:
            self.carts.mark_converted(cart_id)
        except Exception:
            logger.error(
                "Failed to mark cart converted",
                exc_info=True,
                extra={'extra_fields': {'cart_id': cart_id, 'order_id': order.id}}
            )
