"""
Direct placement of orders built from externally-sourced product data.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from shop.config import ShopConfig
from shop.domain.events import OrderPaid, OrderPlaced, WalletDebited
from shop.domain.exceptions import InsufficientBalanceError, ValidationError
from shop.domain.order import (
    Order,
    OrderItem,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    to_money,
)
from shop.infra.locks import wallet_lock
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import OrderRepository, WalletRepository
from shop.services.auth import AuthContext

logger = logging.getLogger(__name__)


class DirectPlacementService:
    """Places orders from inline line items; never touches inventory or cart."""

    def __init__(
        self,
        config: ShopConfig | None = None,
        order_repo: OrderRepository | None = None,
        wallet_repo: WalletRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.config = config or ShopConfig.from_settings()
        self.order_repo = order_repo or OrderRepository()
        self.wallet_repo = wallet_repo or WalletRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    @transaction.atomic
    def place_direct_order(
        self,
        auth: AuthContext,
        items: list[dict],
        shipping_address: dict | None,
        payment_method: str | None = None,
        email: str | None = None,
        total_amount=None,
    ) -> Order:
        """
        Place an order from inline items.

        ``total_amount`` is what the client believes the total is; it is only
        compared against the server-side total for logging.
        With wallet payment the debit and the order commit together.
        """
        method = self._parse_payment_method(payment_method)
        order_items = self._build_items(items)
        address = self._build_address(shipping_address)
        notes = "Order from external source (e-commerce)"
        if email:
            notes = f"{notes}. Email: {email}"

        order = Order.place(
            customer_id=auth.user_id,
            items=order_items,
            placed_at=timezone.now(),
            payment_status=PaymentStatus.PAID if method == PaymentMethod.WALLET else PaymentStatus.PENDING,
            payment_method=method,
            shipping_address=address,
            notes=notes,
            location="Shop",
        )
        total = order.total_amount

        if total_amount is not None and to_money(total_amount) != total:
            logger.warning(
                "client_total_ignored",
                extra={"user_id": str(auth.user_id), "client_total": str(total_amount), "total_amount": str(total)},
            )

        if method == PaymentMethod.WALLET:
            if total <= 0:
                raise ValidationError("Wallet payment requires a positive order total")

            with wallet_lock(auth.user_id):
                wallet = self.wallet_repo.get_or_create(
                    auth.user_id, self.config.default_wallet_balance, for_update=True
                )
                if not wallet.can_afford(total):
                    raise InsufficientBalanceError(wallet.balance, total)

                self.order_repo.save(order)
                wallet.debit(total, order_id=order.id, description=f"Payment for order {order.id}")
                self.wallet_repo.save(wallet)

            self.outbox_repo.add_event(WalletDebited(
                aggregate_id=wallet.id,
                amount=total,
                new_balance=wallet.balance,
                order_id=order.id,
            ))
            self.outbox_repo.add_event(OrderPaid(aggregate_id=order.id, amount=total))
        else:
            self.order_repo.save(order)

        self.outbox_repo.add_event(OrderPlaced(
            aggregate_id=order.id,
            customer_id=auth.user_id,
            total_amount=total,
            items_count=len(order.items),
            payment_method=method.value,
            source="direct",
        ))

        logger.info(
            "direct_order_placed",
            extra={
                "order_id": str(order.id),
                "user_id": str(auth.user_id),
                "total_amount": str(total),
                "payment_method": method.value,
            },
        )
        return self.order_repo.get_by_id(order.id)

    def _parse_payment_method(self, payment_method: str | None) -> PaymentMethod:
        if payment_method is None:
            return PaymentMethod.WALLET
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(
                f"Invalid payment method: {payment_method}",
                allowed=[method.value for method in PaymentMethod],
            )

    def _build_items(self, items: list[dict]) -> list[OrderItem]:
        if not items:
            raise ValidationError("Order must contain at least one item")

        order_items = []
        for index, item in enumerate(items):
            quantity = item.get("quantity")
            if quantity is None:
                quantity = 1
            if item.get("price") is None:
                raise ValidationError(f"Item {index + 1} has no price")
            order_items.append(OrderItem(
                product_name=(item.get("name") or "").strip(),
                quantity=quantity,
                price_at_order=to_money(item["price"]),
                image_url=item.get("image"),
            ))
        return order_items

    def _build_address(self, shipping_address: dict | None) -> ShippingAddress:
        data = shipping_address or {}
        address = ShippingAddress(
            full_name=(data.get("full_name") or "").strip(),
            address=(data.get("address") or "").strip(),
            city=data.get("city") or "",
            postal_code=data.get("postal_code") or "",
            phone=data.get("phone") or "",
            country=data.get("country") or self.config.default_country,
        )
        address.validate()
        return address
