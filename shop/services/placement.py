"""
Cart-backed order placement.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from shop.config import ShopConfig
from shop.domain.events import OrderPaid, OrderPlaced, StockAdjusted
from shop.domain.exceptions import NotFoundError, ValidationError
from shop.domain.order import Order, OrderItem, PaymentMethod, PaymentStatus
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import CartRepository, OrderRepository, ProductRepository
from shop.services.auth import AuthContext

logger = logging.getLogger(__name__)


class OrderPlacementService:
    """Converts a customer's cart into an order, all-or-nothing."""

    def __init__(
        self,
        config: ShopConfig | None = None,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        cart_repo: CartRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.config = config or ShopConfig.from_settings()
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.cart_repo = cart_repo or CartRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    @transaction.atomic
    def place_order(self, auth: AuthContext, payment_simulation: bool = False) -> Order:
        """
        Place an order from the caller's cart.

        Prices and names are snapshotted from the catalog and the total is
        computed here. Stock is decremented and the cart cleared in the same
        transaction; any failure rolls back every write of the attempt.
        """
        cart = self.cart_repo.get_for_customer(auth.user_id, for_update=True)
        if cart.is_empty:
            raise ValidationError("Cart is empty. Add items before placing order.")

        lines = cart.lines
        products = self.product_repo.get_many([line.product_id for line in lines], for_update=True)

        items = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise NotFoundError("Product", line.product_id)
            product.ensure_available(line.quantity)
            items.append(OrderItem(
                product_name=product.name,
                quantity=line.quantity,
                price_at_order=product.price,
                product_id=product.id,
                image_url=product.image_url,
            ))

        order = Order.place(
            customer_id=auth.user_id,
            items=items,
            placed_at=timezone.now(),
            payment_status=PaymentStatus.PAID if payment_simulation else PaymentStatus.PENDING,
            payment_method=PaymentMethod.CARD,
        )
        self.order_repo.save(order)

        for item in order.items:
            self.product_repo.adjust_stock(item.product_id, -item.quantity)
            self.outbox_repo.add_event(
                StockAdjusted(aggregate_id=item.product_id, delta=-item.quantity, order_id=order.id)
            )

        self.cart_repo.clear(auth.user_id)

        self.outbox_repo.add_event(OrderPlaced(
            aggregate_id=order.id,
            customer_id=auth.user_id,
            total_amount=order.total_amount,
            items_count=len(order.items),
            payment_method=order.payment_method.value,
            source="cart",
        ))
        if order.payment_status == PaymentStatus.PAID:
            self.outbox_repo.add_event(OrderPaid(aggregate_id=order.id, amount=order.total_amount))

        logger.info(
            "order_placed",
            extra={
                "order_id": str(order.id),
                "user_id": str(auth.user_id),
                "total_amount": str(order.total_amount),
                "items_count": len(order.items),
                "payment_status": order.payment_status.value,
            },
        )
        return self.order_repo.get_by_id(order.id)
