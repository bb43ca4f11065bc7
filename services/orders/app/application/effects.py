"""
Work done after an order is committed.

Every step is best effort: a failure is logged and the next step still runs,
because the order already exists and must not be reported as failed.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from app.domain.errors import SideEffectError
from app.domain.models import Order, OrderItem
from app.infrastructure.repositories import CouponRepository, LoyaltyLedger
from shared.core import get_logger
from .ports import DispatchResult, EmailSender, NotificationSink
from .pricing import LoyaltyPolicy, OrderTotals

logger = get_logger(__name__)

MESSAGES = {
    "en": {
        "redeemed": "Redeemed points for order {number}",
        "earned": "Points earned from order {number}",
        "confirmation_title": "Order Confirmed {number}",
        "confirmation_body": "Thank you for your order! We'll process and ship it soon.",
    },
    "ar": {
        "redeemed": "استبدال النقاط للطلب {number}",
        "earned": "نقاط مكتسبة من الطلب {number}",
        "confirmation_title": "تم تأكيد طلبك {number}",
        "confirmation_body": "شكراً لطلبك! سنقوم بمعالجة طلبك وإرساله قريباً.",
    },
}


def message(locale: str, key: str, **params) -> str:
    return MESSAGES.get(locale, MESSAGES["en"])[key].format(**params)


@dataclass
class CommittedOrder:
    order: Order
    items: list[OrderItem]
    totals: OrderTotals
    locale: str
    delivery_estimate: str
    user_id: Optional[str] = None
    coupon_id: Optional[int] = None
    loyalty_points_used: int = 0


class PostOrderEffects:
    def __init__(self, coupons: CouponRepository, ledger: LoyaltyLedger, emails: EmailSender,
                 notifications: NotificationSink, loyalty: LoyaltyPolicy):
        self.coupons = coupons
        self.ledger = ledger
        self.emails = emails
        self.notifications = notifications
        self.loyalty = loyalty

    def run(self, committed: CommittedOrder) -> list[str]:
        """Runs every step in order; returns the names of the steps that failed."""
        steps: list[tuple[str, Callable[[CommittedOrder], None]]] = [
            ("coupon_usage", self.increment_coupon_usage),
            ("loyalty_redemption", self.redeem_points),
            ("loyalty_award", self.award_points),
            ("confirmation_email", self.send_confirmation_email),
            ("confirmation_notification", self.notify_user),
        ]
        failed = []
        for name, step in steps:
            try:
                step(committed)
            except Exception as e:
                failed.append(name)
                logger.error(
                    f"Post-order step {name} failed",
                    exc_info=not isinstance(e, SideEffectError),
                    extra={'extra_fields': {
                        'step': name,
                        'order_id': committed.order.id,
                        'order_number': committed.order.order_number,
                        'error': str(e),
                    }}
                )
        return failed

    def increment_coupon_usage(self, committed: CommittedOrder) -> None:
        if committed.coupon_id is None:
            return
        if not self.coupons.increment_usage(committed.coupon_id):
            # Lost a race for the last use; the order stands
            logger.warning(
                "Coupon usage increment skipped due to limit or inactive coupon",
                extra={'extra_fields': {'coupon_id': committed.coupon_id, 'order_id': committed.order.id}}
            )

    def redeem_points(self, committed: CommittedOrder) -> None:
        if not committed.user_id or committed.loyalty_points_used <= 0 or committed.totals.loyalty_discount <= 0:
            return
        self.ledger.redeem(
            committed.user_id,
            committed.loyalty_points_used,
            committed.order.id,
            message(committed.locale, "redeemed", number=committed.order.order_number),
        )

    def award_points(self, committed: CommittedOrder) -> None:
        if not committed.user_id:
            return
        totals = committed.totals
        points = self.loyalty.points_earned(totals.subtotal - totals.discount - totals.loyalty_discount)
        if points <= 0:
            return
        self.ledger.award(
            committed.user_id,
            points,
            committed.order.id,
            message(committed.locale, "earned", number=committed.order.order_number),
        )

    def send_confirmation_email(self, committed: CommittedOrder) -> None:
        result = self.emails.send_order_confirmation_email(
            committed.order, committed.items, committed.locale, committed.delivery_estimate
        )
        _raise_unless_sent(result, "confirmation email")

    def notify_user(self, committed: CommittedOrder) -> None:
        if not committed.user_id:
            return
        order = committed.order
        result = self.notifications.create_notification(
            committed.user_id,
            "order_confirmation",
            message(committed.locale, "confirmation_title", number=order.order_number),
            message(committed.locale, "confirmation_body"),
            {
                "type": "order_confirmation",
                "order_id": order.id,
                "order_number": order.order_number,
                "total": str(order.total),
                "items_count": len(committed.items),
            },
            f"/{committed.locale}/account/orders/{order.order_number}",
        )
        _raise_unless_sent(result, "order notification")


def _raise_unless_sent(result: DispatchResult, what: str) -> None:
    if not result.success:
        raise SideEffectError(params={"what": what, "reason": result.error})
