from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from app.api.deps import (
    Identity, get_catalog, get_identity, get_notifications, get_shipping_rates, require_admin,
)
from app.application.admin_service import OrderStatusService
from app.application.ports import CatalogSource
from app.application.schemas import (
    CheckoutRequest, CheckoutResult, CouponApplyRequest, CouponApplyResult, OrderRead, OrderStats,
    OrderStatusUpdate, OrderWithItemsRead, StatusUpdateResult,
)
from app.application.service import CheckoutService
from app.application.shipping_rates import ShippingRate, ShippingRateTable
from app.infrastructure.clients import NotificationsClient
from app.infrastructure.db import get_db

router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


def get_checkout_service(
    db: Session = Depends(get_db),
    catalog: CatalogSource = Depends(get_catalog),
    notifications: NotificationsClient = Depends(get_notifications),
    shipping_rates: ShippingRateTable = Depends(get_shipping_rates),
) -> CheckoutService:
    return CheckoutService(db, catalog, notifications, notifications, shipping_rates)


def get_status_service(
    db: Session = Depends(get_db),
    notifications: NotificationsClient = Depends(get_notifications),
) -> OrderStatusService:
    return OrderStatusService(db, notifications, notifications)


@router.post("/checkout", response_model=CheckoutResult, response_model_exclude_none=True)
def checkout(
    payload: CheckoutRequest,
    identity: Optional[Identity] = Depends(get_identity),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Place an order from the user's cart, or from the posted items for guests."""
    return service.create_order(payload, user_id=identity.user_id if identity else None)


@router.post("/coupons/apply", response_model=CouponApplyResult, response_model_exclude_none=True)
def apply_coupon(payload: CouponApplyRequest, service: CheckoutService = Depends(get_checkout_service)):
    return service.apply_coupon(payload.code, payload.subtotal)


@router.get("/confirmation/{order_number}", response_model=OrderWithItemsRead)
def get_confirmation(order_number: str, service: CheckoutService = Depends(get_checkout_service)):
    order = service.get_order_for_confirmation(order_number)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/shipping-rates", response_model=list[ShippingRate])
def list_shipping_rates(shipping_rates: ShippingRateTable = Depends(get_shipping_rates)):
    return shipping_rates.all_rates()


@admin_router.put("/{order_id}/status", response_model=StatusUpdateResult, response_model_exclude_none=True)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: Identity = Depends(require_admin),
    service: OrderStatusService = Depends(get_status_service),
):
    return service.update_status(order_id, payload, admin_id=admin.user_id)


@admin_router.get("/stats", response_model=OrderStats)
def order_stats(
    admin: Identity = Depends(require_admin),
    service: OrderStatusService = Depends(get_status_service),
):
    return service.stats()


@admin_router.get("", response_model=list[OrderRead])
def list_orders(
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    admin: Identity = Depends(require_admin),
    service: OrderStatusService = Depends(get_status_service),
):
    """List orders, newest first."""
    return service.list_orders(status=status, date_from=date_from, date_to=date_to, limit=limit)
