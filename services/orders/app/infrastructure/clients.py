"""HTTP clients for the catalog and notifications services."""
import httpx
from typing import Any, Optional

from app.application.ports import DispatchResult
from app.application.schemas import OrderItemRead, OrderRead
from app.core_settings import Settings, get_settings
from app.domain.catalog import Product
from app.domain.models import Order, OrderItem
from shared.core import get_logger

logger = get_logger(__name__)


class CatalogServiceError(Exception):
    pass


class CatalogClient:
    """Reads live price, stock and flash-sale state from the products service."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.BaseTransport] = None):
        settings = settings or get_settings()
        self.products_url = settings.PRODUCTS_SERVICE_URL
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    def get_products_with_flash_sales(self) -> list[Product]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(f"{self.products_url}/products/with-flash-sales")
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Catalog service unavailable: {e}")
            raise CatalogServiceError(str(e)) from e
        return [Product.model_validate(p) for p in response.json()]


class NotificationsClient:
    """Sends emails and in-app notifications through the notifications service."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.BaseTransport] = None):
        settings = settings or get_settings()
        self.base_url = settings.NOTIFICATIONS_SERVICE_URL
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    def _post(self, path: str, payload: dict[str, Any]) -> DispatchResult:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            return DispatchResult(success=False, error=str(e))
        if response.status_code >= 400:
            return DispatchResult(success=False, error=f"{response.status_code}: {response.text[:200]}")
        return DispatchResult(success=True)

    def send_order_confirmation_email(self, order: Order, items: list[OrderItem], locale: str,
                                      delivery_estimate: str) -> DispatchResult:
        return self._post("/emails/order-confirmation", {
            "order": OrderRead.model_validate(order).model_dump(mode="json"),
            "items": [OrderItemRead.model_validate(i).model_dump(mode="json") for i in items],
            "locale": locale,
            "delivery_estimate": delivery_estimate,
        })

    def send_shipping_update_email(self, order: Order, tracking_number: str, carrier: str,
                                   locale: str) -> DispatchResult:
        return self._post("/emails/shipping-update", {
            "order": OrderRead.model_validate(order).model_dump(mode="json"),
            "tracking_number": tracking_number,
            "carrier": carrier,
            "locale": locale,
        })

    def create_notification(self, user_id: str, type: str, title: str, body: str,
                            data: dict[str, Any], link_path: str) -> DispatchResult:
        return self._post("/notifications", {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": body,
            "data": data,
            "link": link_path,
        })
