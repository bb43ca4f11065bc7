from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

class ApiModel(BaseModel):
    """Accepts snake_case or camelCase on input, serializes camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ShippingAddressSnapshot(BaseModel):
    label: Optional[str] = None
    recipient_name: str = ""
    phone: Optional[str] = None
    address_line1: str = ""
    address_line2: Optional[str] = None
    city: str = ""
    governorate: str = ""
    postal_code: Optional[str] = None

class CheckoutItemInput(ApiModel):
    product_id: str
    quantity: int

class CheckoutRequest(ApiModel):
    shipping_address: ShippingAddressSnapshot
    payment_method: Optional[str] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    guest_email: Optional[str] = None
    items: Optional[list[CheckoutItemInput]] = None
    locale: Optional[str] = None
    shipping_address_id: Optional[str] = None
    loyalty_points: Optional[int] = None

class CheckoutResult(ApiModel):
    success: bool
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    error: Optional[str] = None
    params: Optional[dict[str, Any]] = None

class CouponApplyRequest(ApiModel):
    code: str
    subtotal: Decimal

class CouponApplyResult(ApiModel):
    success: bool
    discount: Optional[Decimal] = None
    error: Optional[str] = None
    params: Optional[dict[str, Any]] = None

class OrderStatusUpdate(BaseModel):
    # Plain str so that unknown statuses surface as a validation key, not a 422
    status: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None

class StatusUpdateResult(BaseModel):
    success: bool
    error: Optional[str] = None

class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: str
    product_snapshot: dict[str, Any]
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    shipping_address_id: Optional[str] = None
    shipping_address: dict[str, Any]
    payment_method: str
    status: str
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    loyalty_discount: Decimal
    loyalty_points_used: int
    total: Decimal
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class OrderWithItemsRead(OrderRead):
    items: list[OrderItemRead] = Field(default_factory=list)

class OrderStats(ApiModel):
    total_orders: int
    pending_orders: int
    total_revenue: Decimal

