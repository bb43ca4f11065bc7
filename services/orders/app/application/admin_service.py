from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from app.domain.errors import InvalidTransitionError, OrderError, OrderNotFoundError, ValidationError
from app.domain.models import Order
from app.domain.status import OrderStatus, is_transition_allowed
from app.infrastructure.repositories import OrderRepository, ProfileRepository
from shared.core import get_logger
from .ports import EmailSender, NotificationSink
from .schemas import OrderStats, OrderStatusUpdate, StatusUpdateResult
from .service import resolve_locale
from .validation import validate_order_update

logger = get_logger(__name__)


class OrderStatusService:
    """Admin side of an order: guarded status transitions with audit and shipping notices."""

    def __init__(self, db: Session, emails: EmailSender, notifications: NotificationSink):
        self.orders = OrderRepository(db)
        self.profiles = ProfileRepository(db)
        self.emails = emails
        self.notifications = notifications

    def update_status(self, order_id: int, update: OrderStatusUpdate, admin_id: str) -> StatusUpdateResult:
        log_fields = {'action': 'updateOrderStatus', 'admin_id': admin_id, 'order_id': order_id}
        try:
            order = self.orders.get(order_id)
            if order is None:
                raise OrderNotFoundError()
            previous_status = order.status

            self._check_transition(previous_status, update)
            validate_order_update(update, current_status=previous_status)

            self.orders.apply_update(order, self._changes(update), admin_id)
        except OrderError as e:
            logger.info(f"Order update rejected: {e.key}", extra={'extra_fields': log_fields})
            return StatusUpdateResult(success=False, error=e.key)
        except SQLAlchemyError:
            logger.error("Failed to update order status", exc_info=True, extra={'extra_fields': log_fields})
            return StatusUpdateResult(success=False, error="orders.errors.updateFailed")

        if previous_status != OrderStatus.SHIPPED.value and update.status == OrderStatus.SHIPPED.value:
            self._announce_shipment(order, admin_id)

        return StatusUpdateResult(success=True)

    def list_orders(self, status: Optional[str] = None, date_from: Optional[datetime] = None,
                    date_to: Optional[datetime] = None, limit: Optional[int] = None) -> list[Order]:
        return self.orders.list(status=status, date_from=date_from, date_to=date_to, limit=limit)

    def stats(self) -> OrderStats:
        return OrderStats(**self.orders.stats())

    @staticmethod
    def _check_transition(current: str, update: OrderStatusUpdate) -> None:
        if update.status not in {s.value for s in OrderStatus}:
            raise ValidationError("admin.validation.statusInvalid")
        if not is_transition_allowed(OrderStatus(current), OrderStatus(update.status)):
            raise InvalidTransitionError()

    @staticmethod
    def _changes(update: OrderStatusUpdate) -> dict:
        changes = {"status": update.status}
        # Tracking details are kept unless the update brings new ones
        if update.tracking_number is not None:
            changes["tracking_number"] = update.tracking_number.strip() or None
        if update.carrier is not None:
            changes["carrier"] = update.carrier.strip() or None
        if update.notes is not None:
            changes["notes"] = update.notes
        return changes

    def _email_locale(self, order: Order) -> str:
        if order.user_id:
            try:
                return resolve_locale(self.profiles.get_locale(order.user_id))
            except SQLAlchemyError:
                logger.warning(
                    "Failed to resolve user locale for shipping email",
                    exc_info=True,
                    extra={'extra_fields': {'order_id': order.id}}
                )
                return "en"
        return resolve_locale(order.locale)

    def _announce_shipment(self, order: Order, admin_id: str) -> None:
        log_fields = {'action': 'updateOrderStatus', 'admin_id': admin_id, 'order_id': order.id}
        tracking_number = order.tracking_number or ""
        carrier = order.carrier or ""
        locale = self._email_locale(order)

        try:
            result = self.emails.send_shipping_update_email(order, tracking_number, carrier, locale)
            if not result.success:
                logger.error(f"Shipping update email not sent: {result.error}", extra={'extra_fields': log_fields})
        except Exception:
            logger.error("Failed to send shipping update email", exc_info=True, extra={'extra_fields': log_fields})

        if not order.user_id:
            return
        try:
            result = self.notifications.create_notification(
                order.user_id,
                "shipping_update",
                "Your order is on the way!",
                "We shipped your order. Track it with the details you provided.",
                {
                    "type": "shipping_update",
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "total": str(order.total),
                    "items_count": self.orders.count_items(order.id),
                    "tracking_number": tracking_number,
                },
                f"/{locale}/account/orders/{order.order_number}",
            )
            if not result.success:
                logger.error(f"Shipping notification not created: {result.error}", extra={'extra_fields': log_fields})
        except Exception:
            logger.error("Failed to create shipping notification", exc_info=True, extra={'extra_fields': log_fields})
