"""
Persistence for orders, coupons, carts and the loyalty ledger.

Order inserts do not raise on database errors: they return an
``InsertResult`` so that checkout can tell an order-number collision (retry)
from any other failure (give up).
"""
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional, Union

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.domain.catalog import CartItemWithProduct
from app.domain.models import (
    AdminAuditLog, Cart, CartItem, Coupon, LoyaltyTransaction, Order, OrderItem, Profile,
)
from app.domain.status import CartStatus, OrderStatus
from shared.core import get_logger

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"
ORDER_NUMBER_CONSTRAINT_MARKERS = (
    "orders_order_number_key",
    "ix_orders_order_number",
    "orders.order_number",
)


@dataclass
class InsertOk:
    order: Order
    items: list[OrderItem]


@dataclass
class InsertConflict:
    order_number: str
    error: Exception


@dataclass
class InsertFailed:
    stage: str
    error: Exception


InsertResult = Union[InsertOk, InsertConflict, InsertFailed]


def is_order_number_conflict(exc: IntegrityError) -> bool:
    """True when the integrity error is the unique index on orders.order_number."""
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig)
    if code == UNIQUE_VIOLATION:
        diag = getattr(orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None) or message
        return any(marker in constraint for marker in ORDER_NUMBER_CONSTRAINT_MARKERS)
    lowered = message.lower()
    return ("unique" in lowered or "duplicate key" in lowered) and any(
        marker in message for marker in ORDER_NUMBER_CONSTRAINT_MARKERS
    )


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def order_to_dict(order: Order) -> dict[str, Any]:
    return {column.key: _json_safe(getattr(order, column.key)) for column in Order.__table__.columns}


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def insert_order(self, fields: dict[str, Any], order_number: str,
                     lines: list[CartItemWithProduct]) -> InsertResult:
        """Insert the order and its items in one transaction."""
        order = Order(order_number=order_number, **fields)
        self.db.add(order)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            if is_order_number_conflict(exc):
                return InsertConflict(order_number=order_number, error=exc)
            return InsertFailed(stage="order", error=exc)
        except SQLAlchemyError as exc:
            self.db.rollback()
            return InsertFailed(stage="order", error=exc)

        items = [
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                product_snapshot=line.product.snapshot(),
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
            for line in lines
        ]
        try:
            self.db.add_all(items)
            self.db.commit()
        except SQLAlchemyError as exc:
            # Order row goes with the items; no orphaned orders
            self.db.rollback()
            return InsertFailed(stage="items", error=exc)

        self.db.refresh(order)
        return InsertOk(order=order, items=items)

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.db.execute(
            select(Order).options(selectinload(Order.items)).where(Order.order_number == order_number)
        ).scalar_one_or_none()

    def count_items(self, order_id: int) -> int:
        return self.db.execute(
            select(func.count(OrderItem.id)).where(OrderItem.order_id == order_id)
        ).scalar_one()

    def list(self, status: Optional[str] = None, date_from: Optional[datetime] = None,
             date_to: Optional[datetime] = None, limit: Optional[int] = None) -> list[Order]:
        query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if status:
            query = query.where(Order.status == status)
        if date_from:
            query = query.where(Order.created_at >= date_from)
        if date_to:
            query = query.where(Order.created_at <= date_to)
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def stats(self) -> dict[str, Any]:
        total_orders = self.db.execute(select(func.count(Order.id))).scalar_one()
        pending_orders = self.db.execute(
            select(func.count(Order.id)).where(Order.status == OrderStatus.PENDING.value)
        ).scalar_one()
        revenue = self.db.execute(
            select(func.coalesce(func.sum(Order.total), 0)).where(Order.status != OrderStatus.CANCELLED.value)
        ).scalar_one()
        return {
            "total_orders": total_orders,
            "pending_orders": pending_orders,
            "total_revenue": Decimal(str(revenue)),
        }

    def apply_update(self, order: Order, changes: dict[str, Any], admin_id: str) -> tuple[dict, dict]:
        """Write the changes and the audit row together; returns (before, after)."""
        before = order_to_dict(order)
        for key, value in changes.items():
            setattr(order, key, value)
        order.updated_at = datetime.utcnow()
        try:
            self.db.flush()
            after = order_to_dict(order)
            self.db.add(AdminAuditLog(
                admin_id=admin_id,
                action="order_updated",
                entity_type="order",
                entity_id=str(order.id),
                changes={"before": before, "after": after},
            ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return before, after


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_cart(self, user_id: str) -> Optional[Cart]:
        return self.db.execute(
            select(Cart)
            .options(selectinload(Cart.items))
            .where(Cart.user_id == user_id, Cart.status == CartStatus.ACTIVE.value)
            .order_by(Cart.id.desc())
        ).scalars().first()

    def mark_converted(self, cart_id: int) -> None:
        """Closes the cart so it cannot be checked out twice."""
        try:
            self.db.execute(
                update(Cart).where(Cart.id == cart_id).values(status=CartStatus.CONVERTED.value,
                                                              updated_at=datetime.utcnow())
            )
            self.db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise


class CouponRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_active_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.execute(
            select(Coupon).where(Coupon.code == code.strip().upper(), Coupon.is_active.is_(True))
        ).scalar_one_or_none()

    def find_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.execute(select(Coupon).where(Coupon.code == code)).scalar_one_or_none()

    def increment_usage(self, coupon_id: int) -> bool:
        """Guarded increment: never pushes used_count past usage_limit."""
        try:
            result = self.db.execute(
                update(Coupon)
                .where(
                    and_(
                        Coupon.id == coupon_id,
                        Coupon.is_active.is_(True),
                        or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
                    )
                )
                .values(used_count=Coupon.used_count + 1, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result.rowcount > 0


class LoyaltyLedger:
    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, user_id: str) -> int:
        balance = self.db.execute(
            select(Profile.loyalty_points_balance).where(Profile.id == user_id)
        ).scalar_one_or_none()
        return balance or 0

    def record(self, user_id: str, transaction_type: str, points: int,
               order_id: Optional[int], description: str) -> LoyaltyTransaction:
        """Ledger row and balance move together."""
        entry = LoyaltyTransaction(
            user_id=user_id,
            transaction_type=transaction_type,
            points=points,
            order_id=order_id,
            description=description,
        )
        try:
            self.db.add(entry)
            result = self.db.execute(
                update(Profile)
                .where(Profile.id == user_id)
                .values(loyalty_points_balance=Profile.loyalty_points_balance + points)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.warning(
                    "Loyalty balance not updated, profile missing",
                    extra={'extra_fields': {'user_id': user_id, 'points': points}}
                )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return entry

    def redeem(self, user_id: str, points: int, order_id: int, description: str) -> LoyaltyTransaction:
        return self.record(user_id, "redeemed", -abs(points), order_id, description)

    def award(self, user_id: str, points: int, order_id: int, description: str) -> LoyaltyTransaction:
        return self.record(user_id, "earned", abs(points), order_id, description)


class ProfileRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_locale(self, user_id: str) -> Optional[str]:
        try:
            return self.db.execute(select(Profile.locale).where(Profile.id == user_id)).scalar_one_or_none()
        except SQLAlchemyError:
            self.db.rollback()
            raise
