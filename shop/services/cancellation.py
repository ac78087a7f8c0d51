"""
Order cancellation and compensation.

Customer and admin cancellations settle differently:

* customer: restores stock for lines that reference a product and marks a
  paid order ``refunded`` without crediting the wallet;
* admin: credits the wallet for paid orders and leaves stock untouched.

Both paths are kept as they are; see DESIGN.md.
"""
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from shop.config import ShopConfig
from shop.domain.events import OrderCancelled, OrderRefunded, StockAdjusted, WalletCredited
from shop.domain.exceptions import CancellationLimitError, NotFoundError
from shop.domain.order import CancelledBy, Order, PaymentStatus, TimelineStatus
from shop.infra.locks import cancellation_lock, wallet_lock
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import OrderRepository, ProductRepository, WalletRepository
from shop.services.auth import AuthContext

logger = logging.getLogger(__name__)


class CancellationService:
    """Service for cancelling orders with compensating updates."""

    def __init__(
        self,
        config: ShopConfig | None = None,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        wallet_repo: WalletRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.config = config or ShopConfig.from_settings()
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.wallet_repo = wallet_repo or WalletRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def _load_for_update(self, order_id: UUID) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    @transaction.atomic
    def cancel_by_customer(self, auth: AuthContext, order_id: UUID) -> Order:
        """Cancel the caller's own order, restoring stock."""
        order = self._load_for_update(order_id)
        auth.require_owner(order.customer_id, "You can only cancel your own order")
        order.ensure_cancellable()

        # Held until commit: one customer's cancellations are counted and written one at a time.
        with cancellation_lock(auth.user_id):
            now = timezone.now()
            recent = self.order_repo.count_customer_cancellations(
                auth.user_id, since=now - self.config.cancellation_window
            )
            if recent >= self.config.max_customer_cancellations:
                logger.warning(
                    "cancellation_limit_reached",
                    extra={"user_id": str(auth.user_id), "order_id": str(order.id), "count": recent},
                )
                raise CancellationLimitError(
                    self.config.max_customer_cancellations, self.config.cancellation_window_days
                )

            # Lines from direct placements carry no product reference.
            restored = False
            for item in order.items:
                if item.product_id is None:
                    continue
                self.product_repo.adjust_stock(item.product_id, item.quantity)
                self.outbox_repo.add_event(
                    StockAdjusted(aggregate_id=item.product_id, delta=item.quantity, order_id=order.id)
                )
                restored = True

            was_paid = order.payment_status == PaymentStatus.PAID
            order.cancel(CancelledBy.CUSTOMER, now)
            if was_paid:
                order.mark_refunded()
            self.order_repo.save(order)

        self.outbox_repo.add_event(OrderCancelled(
            aggregate_id=order.id,
            cancelled_by=CancelledBy.CUSTOMER.value,
            stock_restored=restored,
        ))
        if was_paid:
            self.outbox_repo.add_event(OrderRefunded(
                aggregate_id=order.id, amount=order.total_amount, wallet_credited=False
            ))

        logger.info(
            "order_cancelled",
            extra={
                "order_id": str(order.id),
                "user_id": str(auth.user_id),
                "cancelled_by": CancelledBy.CUSTOMER.value,
                "stock_restored": restored,
            },
        )
        return self.order_repo.get_by_id(order.id)

    @transaction.atomic
    def cancel_by_admin(self, auth: AuthContext, order_id: UUID) -> Order:
        """Cancel any cancellable order and refund a paid total to the wallet."""
        auth.require_admin()
        order = self._load_for_update(order_id)
        order.ensure_cancellable()

        now = timezone.now()
        refunded = False
        if order.payment_status == PaymentStatus.PAID:
            if order.total_amount > 0:
                with wallet_lock(order.customer_id):
                    wallet = self.wallet_repo.get_or_create(
                        order.customer_id, self.config.default_wallet_balance, for_update=True
                    )
                    wallet.credit(
                        order.total_amount,
                        order_id=order.id,
                        description=f"Refund for order {order.id}",
                    )
                    self.wallet_repo.save(wallet)
                self.outbox_repo.add_event(WalletCredited(
                    aggregate_id=wallet.id,
                    amount=order.total_amount,
                    new_balance=wallet.balance,
                    order_id=order.id,
                ))
            order.mark_refunded()
            refunded = True

        order.cancel(CancelledBy.ADMIN, now)
        order.add_timeline_entry(
            TimelineStatus.CANCELLED,
            "Order cancelled by admin - refund processed" if refunded else "Order cancelled by admin",
            now,
        )
        self.order_repo.save(order)

        self.outbox_repo.add_event(OrderCancelled(
            aggregate_id=order.id,
            cancelled_by=CancelledBy.ADMIN.value,
            stock_restored=False,
        ))
        if refunded:
            self.outbox_repo.add_event(OrderRefunded(
                aggregate_id=order.id, amount=order.total_amount, wallet_credited=True
            ))

        logger.info(
            "order_cancelled",
            extra={
                "order_id": str(order.id),
                "user_id": str(auth.user_id),
                "cancelled_by": CancelledBy.ADMIN.value,
                "refunded": refunded,
            },
        )
        return self.order_repo.get_by_id(order.id)
