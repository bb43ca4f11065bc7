"""Catalog data as seen by checkout: live products and the lines built from them."""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional


def as_utc(value: datetime) -> datetime:
    """Naive timestamps coming from the catalog are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FlashSale(BaseModel):
    flash_price: Decimal
    starts_at: datetime
    ends_at: datetime
    is_active: bool = True

    def is_running(self, now: datetime) -> bool:
        now = as_utc(now)
        return self.is_active and as_utc(self.starts_at) <= now < as_utc(self.ends_at)


class Product(BaseModel):
    id: str
    name: str
    brand: str = ""
    thumbnail: str = ""
    specifications: dict[str, Any] = Field(default_factory=dict)
    price: Decimal
    stock: int = 0
    flash_sale: Optional[FlashSale] = None

    def effective_unit_price(self, now: datetime) -> Decimal:
        if self.flash_sale is not None and self.flash_sale.is_running(now):
            return self.flash_sale.flash_price
        return self.price

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "brand": self.brand,
            "thumbnail": self.thumbnail,
            "specifications": self.specifications,
        }


class CartItemWithProduct(BaseModel):
    """A cart or guest line joined with its live product, price locked in."""
    product_id: str
    quantity: int
    unit_price: Decimal
    product: Product

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity
