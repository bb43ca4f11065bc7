"""Collaborators owned by other services."""
from typing import Any, Optional, Protocol

from pydantic import BaseModel

from app.domain.catalog import Product
from app.domain.models import Order, OrderItem


class DispatchResult(BaseModel):
    success: bool
    error: Optional[str] = None


class CatalogSource(Protocol):
    def get_products_with_flash_sales(self) -> list[Product]: ...


class EmailSender(Protocol):
    def send_order_confirmation_email(self, order: Order, items: list[OrderItem], locale: str,
                                      delivery_estimate: str) -> DispatchResult: ...

    def send_shipping_update_email(self, order: Order, tracking_number: str, carrier: str,
                                   locale: str) -> DispatchResult: ...


class NotificationSink(Protocol):
    def create_notification(self, user_id: str, type: str, title: str, body: str,
                            data: dict[str, Any], link_path: str) -> DispatchResult: ...
