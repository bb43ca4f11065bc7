"""
Shared fixtures: in-memory sqlite database, seeded coupons/carts/profiles and
fake collaborators that record what they were asked to send.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.service import CheckoutService
from app.application.shipping_rates import StaticShippingRateTable
from app.domain.catalog import Product
from app.domain.models import Base, Cart, CartItem, Coupon, Profile
from factories import USER_ID, FakeCatalog, FakeNotifications, running_flash_sale


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(id="p-phone", name="Phone", brand="Acme", price=Decimal(25_000), stock=10),
        Product(id="p-laptop", name="Laptop", brand="Acme", price=Decimal(60_000), stock=2),
        Product(id="p-watch", name="Watch", brand="Tick", price=Decimal(50_000), stock=5,
                flash_sale=running_flash_sale(40_000)),
    ]


@pytest.fixture
def catalog(products) -> FakeCatalog:
    return FakeCatalog(products)


@pytest.fixture
def notifications() -> FakeNotifications:
    return FakeNotifications()


@pytest.fixture
def shipping_rates() -> StaticShippingRateTable:
    return StaticShippingRateTable.from_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """Coupons, a profile with points and an active cart for USER_ID."""
    db.add_all([
        Coupon(code="SAVE10", discount_type="percentage", discount_value=Decimal(10),
               max_discount=Decimal(5_000)),
        Coupon(code="FIXED5K", discount_type="fixed", discount_value=Decimal(5_000)),
        Coupon(code="ONCEONLY", discount_type="fixed", discount_value=Decimal(1_000), usage_limit=1),
        Coupon(code="MIN50K", discount_type="fixed", discount_value=Decimal(2_000),
               min_order_value=Decimal(50_000)),
        Coupon(code="OLDDEAL", discount_type="fixed", discount_value=Decimal(2_000),
               expiry_date=datetime.utcnow() - timedelta(days=1)),
        Coupon(code="PAUSED", discount_type="fixed", discount_value=Decimal(2_000), is_active=False),
        Profile(id=USER_ID, loyalty_points_balance=500, locale="ar"),
    ])
    cart = Cart(user_id=USER_ID, status="active")
    cart.items = [
        CartItem(product_id="p-phone", quantity=2, unit_price=Decimal(25_000)),
        CartItem(product_id="p-watch", quantity=1, unit_price=Decimal(50_000)),
    ]
    db.add(cart)
    db.commit()
    return cart


@pytest.fixture
def checkout_service(db, catalog, notifications, shipping_rates):
    def build(**kwargs) -> CheckoutService:
        return CheckoutService(db, catalog, notifications, notifications, shipping_rates, **kwargs)
    return build


@pytest.fixture
def client(db, catalog, notifications, shipping_rates):
    from app.api.deps import get_catalog, get_notifications, get_shipping_rates
    from app.infrastructure.db import get_db
    from app.main import app

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_notifications] = lambda: notifications
    app.dependency_overrides[get_shipping_rates] = lambda: shipping_rates
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
