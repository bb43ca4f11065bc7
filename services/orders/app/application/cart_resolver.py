from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Protocol

from app.domain.catalog import CartItemWithProduct, Product
from app.domain.errors import EmptyCartError
from app.domain.models import Cart
from .ports import CatalogSource
from .schemas import CheckoutItemInput


class ActiveCartLookup(Protocol):
    def get_active_cart(self, user_id: str) -> Optional[Cart]: ...


@dataclass
class ResolvedCart:
    items: list[CartItemWithProduct]
    subtotal: Decimal
    cart_id: Optional[int] = None


class CartResolver:
    """Builds the priced line items of a checkout; never writes."""

    def __init__(self, carts: ActiveCartLookup, catalog: CatalogSource,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.carts = carts
        self.catalog = catalog
        self.clock = clock

    def resolve(self, user_id: Optional[str] = None,
                guest_items: Optional[list[CheckoutItemInput]] = None) -> ResolvedCart:
        if user_id:
            return self.resolve_user_cart(user_id)
        return self.resolve_guest_items(guest_items or [])

    def resolve_user_cart(self, user_id: str) -> ResolvedCart:
        cart = self.carts.get_active_cart(user_id)
        if cart is None or not cart.items:
            raise EmptyCartError()

        products = self._products_by_id()
        now = self.clock()
        items = []
        for cart_item in cart.items:
            product = products.get(cart_item.product_id)
            if product is None:
                # Product withdrawn from the catalog since it was added
                continue
            items.append(CartItemWithProduct(
                product_id=product.id,
                quantity=cart_item.quantity,
                unit_price=product.effective_unit_price(now),
                product=product,
            ))

        if not items:
            raise EmptyCartError()
        return ResolvedCart(items=items, subtotal=sum((i.subtotal for i in items), Decimal(0)), cart_id=cart.id)

    def resolve_guest_items(self, guest_items: list[CheckoutItemInput]) -> ResolvedCart:
        """Repeated lines for one product are merged so stock is checked against their sum."""
        if not guest_items:
            raise EmptyCartError()

        quantities: dict[str, int] = {}
        for requested in guest_items:
            if requested.quantity <= 0:
                raise EmptyCartError()
            quantities[requested.product_id] = quantities.get(requested.product_id, 0) + requested.quantity

        products = self._products_by_id()
        now = self.clock()
        items = []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None or quantity > product.stock:
                raise EmptyCartError()
            items.append(CartItemWithProduct(
                product_id=product.id,
                quantity=quantity,
                unit_price=product.effective_unit_price(now),
                product=product,
            ))

        return ResolvedCart(items=items, subtotal=sum((i.subtotal for i in items), Decimal(0)))

    def _products_by_id(self) -> dict[str, Product]:
        return {p.id: p for p in self.catalog.get_products_with_flash_sales()}
