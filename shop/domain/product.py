"""
Catalog view of a product used by the ordering core.
"""
from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from shop.domain.exceptions import InsufficientStockError, ProductUnavailableError


class Product:
    """Read-only product snapshot: price, stock and availability."""

    def __init__(
        self,
        id: UUID,
        name: str,
        price: Decimal,
        stock: int,
        is_active: bool = True,
        image_url: str | None = None,
    ):
        self.id = id
        self.name = name
        self.price = price
        self.stock = stock
        self.is_active = is_active
        self.image_url = image_url

    def ensure_available(self, quantity: int) -> None:
        """Raise if the product cannot be sold in the requested quantity."""
        if not self.is_active:
            raise ProductUnavailableError(self.name)
        if self.stock < quantity:
            raise InsufficientStockError(self.name, available=self.stock, requested=quantity)
