"""
Order queries and administration.
"""
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from shop.config import ShopConfig
from shop.domain.events import OrderPaid, OrderStatusChanged
from shop.domain.exceptions import NotFoundError, ValidationError
from shop.domain.order import Order, OrderStatus, TimelineStatus
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import OrderRepository
from shop.services.auth import AuthContext
from shop.services.cancellation import CancellationService

logger = logging.getLogger(__name__)

TRACKING_DESCRIPTIONS = {
    TimelineStatus.PROCESSING: "Items are being packed",
    TimelineStatus.SHOP_TO_DELIVERY: "Waiting for delivery boy to collect",
    TimelineStatus.IN_TRANSIT: "Delivery boy is on the way to your location",
    TimelineStatus.OUT_FOR_DELIVERY: "Your order is arriving soon",
    TimelineStatus.DELIVERED: "Order delivered successfully",
}


class OrderService:
    """Service for order reads, approval, status and tracking updates."""

    def __init__(
        self,
        config: ShopConfig | None = None,
        order_repo: OrderRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
        cancellation_service: CancellationService | None = None,
    ):
        self.config = config or ShopConfig.from_settings()
        self.order_repo = order_repo or OrderRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.cancellation_service = cancellation_service or CancellationService(
            config=self.config, order_repo=self.order_repo, outbox_repo=self.outbox_repo
        )

    def _get(self, order_id: UUID, for_update: bool = False) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def get_order(self, auth: AuthContext, order_id: UUID) -> Order:
        """Get order visible to the caller (owner or admin)."""
        order = self._get(order_id)
        auth.require_owner_or_admin(order.customer_id)
        return order

    def list_orders(
        self,
        auth: AuthContext,
        include_all: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        """Caller's orders, newest first; admins may ask for every order."""
        if include_all and auth.is_admin:
            return self.order_repo.list_all(limit=limit, offset=offset)
        return self.order_repo.get_by_customer(auth.user_id, limit=limit, offset=offset)

    def list_all_orders(
        self,
        auth: AuthContext,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        auth.require_admin()
        return self.order_repo.list_all(
            status=_parse_status(status) if status else None, limit=limit, offset=offset
        )

    def pending_orders(self, auth: AuthContext) -> list[Order]:
        """Orders waiting for admin approval."""
        auth.require_admin()
        return self.order_repo.list_all(status=OrderStatus.PENDING, limit=500)

    @transaction.atomic
    def approve_order(self, auth: AuthContext, order_id: UUID) -> Order:
        """Approve a pending order (pending -> confirmed)."""
        auth.require_admin()
        order = self._get(order_id, for_update=True)
        previous = order.status
        order.confirm(timezone.now())
        return self._save_status_change(auth, order, previous)

    @transaction.atomic
    def update_status(self, auth: AuthContext, order_id: UUID, status: str) -> Order:
        """Move an order along the state machine. Cancelling goes through the refund path."""
        auth.require_admin()
        new_status = _parse_status(status)

        if new_status == OrderStatus.CANCELLED:
            return self.cancellation_service.cancel_by_admin(auth, order_id)
        if new_status == OrderStatus.CONFIRMED:
            return self.approve_order(auth, order_id)

        order = self._get(order_id, for_update=True)
        previous = order.status
        order.transition_to(new_status)
        if new_status == OrderStatus.DELIVERED and order.last_tracking_status != TimelineStatus.DELIVERED:
            order.add_timeline_entry(
                TimelineStatus.DELIVERED, TRACKING_DESCRIPTIONS[TimelineStatus.DELIVERED], timezone.now()
            )
        return self._save_status_change(auth, order, previous)

    @transaction.atomic
    def add_tracking_event(
        self,
        auth: AuthContext,
        order_id: UUID,
        status: str,
        description: str | None = None,
        location: str | None = None,
    ) -> Order:
        """Record a delivery checkpoint; the coarse status is left alone."""
        auth.require_admin()
        try:
            tracking_status = TimelineStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid tracking status: {status}")

        order = self._get(order_id, for_update=True)
        order.add_tracking_event(
            tracking_status,
            description or TRACKING_DESCRIPTIONS.get(tracking_status, tracking_status.value),
            timezone.now(),
            location=location,
        )
        self.order_repo.save(order)
        logger.info(
            "order_tracking_updated",
            extra={"order_id": str(order.id), "status": tracking_status.value, "location": location},
        )
        return self.order_repo.get_by_id(order.id)

    @transaction.atomic
    def pay_order(self, auth: AuthContext, order_id: UUID) -> Order:
        """Simulated card payment for the caller's own order."""
        order = self._get(order_id, for_update=True)
        auth.require_owner(order.customer_id)
        order.mark_paid()
        self.order_repo.save(order)
        self.outbox_repo.add_event(OrderPaid(aggregate_id=order.id, amount=order.total_amount))
        logger.info(
            "order_paid",
            extra={"order_id": str(order.id), "user_id": str(auth.user_id), "total_amount": str(order.total_amount)},
        )
        return self.order_repo.get_by_id(order.id)

    def _save_status_change(self, auth: AuthContext, order: Order, previous: OrderStatus) -> Order:
        self.order_repo.save(order)
        self.outbox_repo.add_event(OrderStatusChanged(
            aggregate_id=order.id,
            from_status=previous.value,
            to_status=order.status.value,
        ))
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "user_id": str(auth.user_id),
                "from_status": previous.value,
                "status": order.status.value,
            },
        )
        return self.order_repo.get_by_id(order.id)


def _parse_status(status: str) -> OrderStatus:
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(
            f"Valid status required: {', '.join(s.value for s in OrderStatus)}",
            status=status,
        )
