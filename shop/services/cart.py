"""
Cart operations for the authenticated customer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from django.db import transaction

from shop.domain.cart import Cart
from shop.domain.exceptions import InsufficientStockError, NotFoundError, ProductUnavailableError
from shop.domain.product import Product
from shop.infra.repositories import CartRepository, ProductRepository
from shop.services.auth import AuthContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartItemView:
    product_id: UUID
    product_name: str
    unit_price: Decimal
    quantity: int
    available_stock: int
    is_active: bool

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CartView:
    customer_id: UUID
    items: list[CartItemView]

    @property
    def total_amount(self) -> Decimal:
        """Display total; the order total is recomputed at placement."""
        return sum((item.subtotal for item in self.items), Decimal("0.00"))


class CartService:
    """Service for cart operations."""

    def __init__(
        self,
        cart_repo: CartRepository | None = None,
        product_repo: ProductRepository | None = None,
    ):
        self.cart_repo = cart_repo or CartRepository()
        self.product_repo = product_repo or ProductRepository()

    def get_cart(self, auth: AuthContext) -> CartView:
        """Get the caller's cart, creating an empty one on first access."""
        return self._view(self.cart_repo.get_for_customer(auth.user_id))

    @transaction.atomic
    def add_item(self, auth: AuthContext, product_id: UUID, quantity: int) -> CartView:
        """Add a product, merging with an existing line for the same product."""
        cart = self.cart_repo.get_for_customer(auth.user_id, for_update=True)
        product = self._get_product(product_id)
        if not product.is_active:
            raise ProductUnavailableError(product.name)

        merged = cart.quantity_of(product_id) + quantity
        if product.stock < merged:
            raise InsufficientStockError(product.name, available=product.stock, requested=merged)

        cart.add_item(product_id, quantity)
        self.cart_repo.save(cart)
        logger.info(
            "cart_item_added",
            extra={"user_id": str(auth.user_id), "product_id": str(product_id), "quantity": merged},
        )
        return self._view(cart)

    @transaction.atomic
    def update_item(self, auth: AuthContext, product_id: UUID, quantity: int) -> CartView:
        """Set a line's quantity; zero removes the line."""
        cart = self.cart_repo.get_for_customer(auth.user_id, for_update=True)
        if quantity and quantity > 0:
            self._get_product(product_id).ensure_available(quantity)
        cart.set_quantity(product_id, quantity)
        self.cart_repo.save(cart)
        return self._view(cart)

    @transaction.atomic
    def remove_item(self, auth: AuthContext, product_id: UUID) -> CartView:
        cart = self.cart_repo.get_for_customer(auth.user_id, for_update=True)
        cart.remove_item(product_id)
        self.cart_repo.save(cart)
        return self._view(cart)

    def _get_product(self, product_id: UUID) -> Product:
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def _view(self, cart: Cart) -> CartView:
        lines = cart.lines
        products = self.product_repo.get_many([line.product_id for line in lines])
        items = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                continue
            items.append(CartItemView(
                product_id=product.id,
                product_name=product.name,
                unit_price=product.price,
                quantity=line.quantity,
                available_stock=product.stock,
                is_active=product.is_active,
            ))
        return CartView(customer_id=cart.customer_id, items=items)
