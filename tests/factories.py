"""Fake collaborators and request builders used across the suite."""

import jwt
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import OperationalError

from app.application.ports import DispatchResult
from app.application.schemas import CheckoutRequest
from app.core_settings import get_settings
from app.domain.catalog import FlashSale, Product

USER_ID = "user-1"
ADMIN_ID = "admin-1"


class FakeCatalog:
    def __init__(self, products: list[Product]):
        self.products = products

    def get_products_with_flash_sales(self) -> list[Product]:
        return list(self.products)


class FakeNotifications:
    """Email sender and notification sink in one, like the HTTP client."""

    def __init__(self):
        self.confirmation_emails: list[dict[str, Any]] = []
        self.shipping_emails: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.fail_emails = False
        self.fail_notifications = False
        self.raise_errors = False

    def _result(self, failing: bool) -> DispatchResult:
        if self.raise_errors:
            raise ConnectionError("notifications service unreachable")
        if failing:
            return DispatchResult(success=False, error="503: unavailable")
        return DispatchResult(success=True)

    def send_order_confirmation_email(self, order, items, locale, delivery_estimate) -> DispatchResult:
        self.confirmation_emails.append({
            "order_number": order.order_number,
            "items": len(items),
            "locale": locale,
            "delivery_estimate": delivery_estimate,
        })
        return self._result(self.fail_emails)

    def send_shipping_update_email(self, order, tracking_number, carrier, locale) -> DispatchResult:
        self.shipping_emails.append({
            "order_number": order.order_number,
            "tracking_number": tracking_number,
            "carrier": carrier,
            "locale": locale,
        })
        return self._result(self.fail_emails)

    def create_notification(self, user_id, type, title, body, data, link_path) -> DispatchResult:
        self.notifications.append({
            "user_id": user_id,
            "type": type,
            "title": title,
            "data": data,
            "link": link_path,
        })
        return self._result(self.fail_notifications)


def running_flash_sale(flash_price: int) -> FlashSale:
    now = datetime.now(timezone.utc)
    return FlashSale(
        flash_price=Decimal(flash_price),
        starts_at=now - timedelta(hours=1),
        ends_at=now + timedelta(hours=1),
    )


def address(**overrides) -> dict[str, Any]:
    data = {
        "recipient_name": "Ali Hassan",
        "phone": "07701234567",
        "address_line1": "Street 14, House 3",
        "city": "Karrada",
        "governorate": "Baghdad",
    }
    data.update(overrides)
    return data


def checkout_request(guest_email: Optional[str] = None, items: Optional[list[dict]] = None,
                     **overrides) -> CheckoutRequest:
    payload: dict[str, Any] = {
        "shipping_address": address(),
        "payment_method": "cod",
        "guest_email": guest_email,
        "items": items,
    }
    payload.update(overrides)
    return CheckoutRequest.model_validate(payload)


def make_token(user_id: str, is_admin: bool = False) -> str:
    settings = get_settings()
    return jwt.encode({"sub": user_id, "is_admin": is_admin}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def auth_header(user_id: str, is_admin: bool = False) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, is_admin)}"}


class FlakySession:
    """Wraps a session so statements on the given tables fail (all statements when none are given)."""

    def __init__(self, session, tables: tuple[str, ...] = ()):
        self.session = session
        self.tables = tables
        self.rollbacks = 0

    def execute(self, statement, *args, **kwargs):
        table = getattr(statement, "table", None)
        if not self.tables or (table is not None and table.name in self.tables):
            raise OperationalError(str(statement), {}, Exception("server closed the connection unexpectedly"))
        return self.session.execute(statement, *args, **kwargs)

    def rollback(self):
        self.rollbacks += 1
        self.session.rollback()

    def __getattr__(self, name):
        return getattr(self.session, name)
