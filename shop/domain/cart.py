"""
Domain model for the shopping cart.
"""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from shop.domain.exceptions import NotFoundError, ValidationError


@dataclass(frozen=True)
class CartLine:
    product_id: UUID
    quantity: int


class Cart:
    """Per-customer cart keyed by product id, in insertion order."""

    def __init__(self, customer_id: UUID, lines: dict[UUID, int] | None = None):
        self.customer_id = customer_id
        self._lines: dict[UUID, int] = dict(lines or {})

    @property
    def lines(self) -> list[CartLine]:
        return [CartLine(product_id, quantity) for product_id, quantity in self._lines.items()]

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def quantity_of(self, product_id: UUID) -> int:
        return self._lines.get(product_id, 0)

    def add_item(self, product_id: UUID, quantity: int) -> int:
        """Add quantity of a product, merging with an existing line."""
        _validate_quantity(quantity, minimum=1)
        self._lines[product_id] = self._lines.get(product_id, 0) + quantity
        return self._lines[product_id]

    def set_quantity(self, product_id: UUID, quantity: int) -> None:
        """Set line quantity; zero removes the line."""
        _validate_quantity(quantity, minimum=0)
        if product_id not in self._lines:
            raise NotFoundError("Cart item", product_id)
        if quantity == 0:
            del self._lines[product_id]
        else:
            self._lines[product_id] = quantity

    def remove_item(self, product_id: UUID) -> None:
        if product_id not in self._lines:
            raise NotFoundError("Cart item", product_id)
        del self._lines[product_id]


def _validate_quantity(quantity: int, minimum: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < minimum:
        raise ValidationError(f"Quantity must be an integer of at least {minimum}")
