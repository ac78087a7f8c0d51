"""
Infrastructure repositories for domain entities.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from shop.domain.cart import Cart
from shop.domain.exceptions import InsufficientStockError, LedgerIntegrityError, NotFoundError
from shop.domain.order import (
    CancelledBy,
    Order,
    OrderItem,
    OrderStatus,
    OwnerSummary,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    TimelineEntry,
    TimelineStatus,
)
from shop.domain.product import Product
from shop.domain.wallet import (
    TransactionDirection,
    TransactionStatus,
    Wallet,
    WalletTransaction,
)
from shop.infra.models import (
    CartItemORM,
    CartORM,
    CustomerORM,
    OrderItemORM,
    OrderORM,
    OrderTimelineEntryORM,
    ProductORM,
    WalletORM,
    WalletTransactionORM,
)

logger = logging.getLogger(__name__)


class CustomerRepository:
    """Repository for Customer entities."""

    def get_by_id(self, customer_id: UUID | str) -> CustomerORM | None:
        """Get customer by ID."""
        return CustomerORM.objects.filter(id=customer_id).first()

    def create(self, name: str, email: str, role: str = "customer") -> UUID:
        """Create new customer."""
        new_customer = CustomerORM.objects.create(
            name=name,
            email=email,
            role=role,
        )
        return new_customer.id


class ProductRepository:
    """Catalog lookups and the inventory ledger."""

    def get_by_id(self, product_id: UUID, for_update: bool = False) -> Product | None:
        queryset = ProductORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        product_orm = queryset.filter(id=product_id).first()
        return self._to_domain(product_orm) if product_orm else None

    def get_many(self, product_ids: list[UUID], for_update: bool = False) -> dict[UUID, Product]:
        """Load several products, locking rows in a stable order when asked."""
        queryset = ProductORM.objects.filter(id__in=product_ids).order_by("id")
        if for_update:
            queryset = queryset.select_for_update()
        return {product_orm.id: self._to_domain(product_orm) for product_orm in queryset}

    def adjust_stock(self, product_id: UUID, delta: int) -> int:
        """
        Atomically add ``delta`` to a product's stock and return the new level.

        Decrements are applied with a conditional UPDATE so stock never goes
        below zero, even against concurrent writers.
        """
        queryset = ProductORM.objects.filter(id=product_id)
        if delta < 0:
            queryset = queryset.filter(stock__gte=-delta)

        updated = queryset.update(stock=F("stock") + delta, updated_at=timezone.now())
        if not updated:
            current = ProductORM.objects.filter(id=product_id).values("name", "stock").first()
            if current is None:
                raise NotFoundError("Product", product_id)
            raise InsufficientStockError(current["name"], available=current["stock"], requested=-delta)

        return ProductORM.objects.values_list("stock", flat=True).get(id=product_id)

    def _to_domain(self, product_orm: ProductORM) -> Product:
        return Product(
            id=product_orm.id,
            name=product_orm.name,
            price=product_orm.price,
            stock=product_orm.stock,
            is_active=product_orm.is_active,
            image_url=product_orm.image_url,
        )


class CartRepository:
    """Repository for per-customer carts (created lazily)."""

    def get_for_customer(self, customer_id: UUID, for_update: bool = False) -> Cart:
        cart_orm = self._get_or_create_orm(customer_id, for_update=for_update)
        lines = {item.product_id: item.quantity for item in cart_orm.items.all()}
        return Cart(customer_id=customer_id, lines=lines)

    @transaction.atomic
    def save(self, cart: Cart) -> None:
        """Persist cart lines, keeping their display order."""
        cart_orm = self._get_or_create_orm(cart.customer_id)
        lines = cart.lines
        CartItemORM.objects.filter(cart=cart_orm).exclude(
            product_id__in=[line.product_id for line in lines]
        ).delete()
        for position, line in enumerate(lines):
            CartItemORM.objects.update_or_create(
                cart=cart_orm,
                product_id=line.product_id,
                defaults={"quantity": line.quantity, "position": position},
            )

    def clear(self, customer_id: UUID) -> None:
        CartItemORM.objects.filter(cart__customer_id=customer_id).delete()

    def _get_or_create_orm(self, customer_id: UUID, for_update: bool = False) -> CartORM:
        queryset = CartORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        cart_orm = queryset.filter(customer_id=customer_id).first()
        if cart_orm is None:
            cart_orm, _ = CartORM.objects.get_or_create(customer_id=customer_id)
        return cart_orm


class OrderRepository:
    """Repository for Order aggregate."""

    def _queryset(self, for_update: bool = False):
        queryset = OrderORM.objects.select_related("customer").prefetch_related("items", "timeline")
        if for_update:
            queryset = queryset.select_for_update(of=("self",))
        return queryset

    def get_by_id(self, order_id: UUID, for_update: bool = False) -> Order | None:
        """Get order by ID with items and timeline (no N+1)."""
        try:
            return self._to_domain(self._queryset(for_update).get(id=order_id))
        except OrderORM.DoesNotExist:
            return None

    def get_by_customer(self, customer_id: UUID, limit: int = 50, offset: int = 0) -> list[Order]:
        """Get orders by customer, newest first."""
        orders_orm = (
            self._queryset()
            .filter(customer_id=customer_id)
            .order_by("-created_at")[offset:offset + limit]
        )
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    def list_all(self, status: OrderStatus | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        queryset = self._queryset()
        if status is not None:
            queryset = queryset.filter(status=status.value)
        orders_orm = queryset.order_by("-created_at")[offset:offset + limit]
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    def count_customer_cancellations(self, customer_id: UUID, since: datetime) -> int:
        """Count orders the customer cancelled themselves since ``since``."""
        return OrderORM.objects.filter(
            customer_id=customer_id,
            status=OrderStatus.CANCELLED.value,
            cancelled_by=CancelledBy.CUSTOMER.value,
            cancelled_at__gte=since,
        ).count()

    @transaction.atomic
    def save(self, order: Order) -> UUID:
        """Save order aggregate. Line items are written once; the timeline is append-only."""
        order_orm, created = OrderORM.objects.update_or_create(
            id=order.id,
            defaults={
                "customer_id": order.customer_id,
                "total_amount": order.total_amount,
                "status": order.status.value,
                "payment_status": order.payment_status.value,
                "payment_method": order.payment_method.value,
                "shipping_address": (
                    order.shipping_address.as_dict() if order.shipping_address else None
                ),
                "notes": order.notes,
                "cancelled_at": order.cancelled_at,
                "cancelled_by": order.cancelled_by.value if order.cancelled_by else None,
            },
        )

        if created:
            OrderItemORM.objects.bulk_create([
                OrderItemORM(
                    order=order_orm,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price_at_order=item.price_at_order,
                    subtotal=item.subtotal,
                    image_url=item.image_url,
                )
                for item in order.items
            ])

        persisted = OrderTimelineEntryORM.objects.filter(order=order_orm).count()
        OrderTimelineEntryORM.objects.bulk_create([
            OrderTimelineEntryORM(
                order=order_orm,
                status=entry.status.value,
                description=entry.description,
                timestamp=entry.timestamp,
                location=entry.location,
            )
            for entry in order.timeline[persisted:]
        ])

        return order_orm.id

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [
            OrderItem(
                product_name=item_orm.product_name,
                quantity=item_orm.quantity,
                price_at_order=item_orm.price_at_order,
                product_id=item_orm.product_id,
                image_url=item_orm.image_url,
            )
            for item_orm in order_orm.items.all()
        ]
        timeline = [
            TimelineEntry(
                status=TimelineStatus(entry_orm.status),
                description=entry_orm.description,
                timestamp=entry_orm.timestamp,
                location=entry_orm.location,
            )
            for entry_orm in order_orm.timeline.all()
        ]
        customer = order_orm.customer

        return Order(
            id=order_orm.id,
            customer_id=order_orm.customer_id,
            items=items,
            status=OrderStatus(order_orm.status),
            payment_status=PaymentStatus(order_orm.payment_status),
            payment_method=PaymentMethod(order_orm.payment_method),
            shipping_address=(
                ShippingAddress(**order_orm.shipping_address) if order_orm.shipping_address else None
            ),
            notes=order_orm.notes,
            cancelled_at=order_orm.cancelled_at,
            cancelled_by=CancelledBy(order_orm.cancelled_by) if order_orm.cancelled_by else None,
            timeline=timeline,
            created_at=order_orm.created_at,
            owner=OwnerSummary(id=customer.id, name=customer.name, email=customer.email),
        )


class WalletRepository:
    """Repository for Wallet aggregate."""

    def get_by_customer_id(self, customer_id: UUID, for_update: bool = False) -> Wallet | None:
        """Get wallet by customer ID with transactions."""
        queryset = WalletORM.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return self._to_domain(queryset.get(customer_id=customer_id))
        except WalletORM.DoesNotExist:
            return None

    @transaction.atomic
    def get_or_create(self, customer_id: UUID, opening_balance: Decimal, for_update: bool = False) -> Wallet:
        """Get the customer's wallet, opening it with a starting credit if missing."""
        wallet = self.get_by_customer_id(customer_id, for_update=for_update)
        if wallet is not None:
            return wallet

        wallet = Wallet(customer_id=customer_id)
        if opening_balance > 0:
            wallet.credit(opening_balance, order_id=None, description="Opening balance")
        self.save(wallet)
        logger.info(
            "wallet_opened",
            extra={"customer_id": str(customer_id), "balance": str(wallet.balance)},
        )
        return self.get_by_customer_id(customer_id, for_update=for_update)

    def get_balance(self, customer_id: UUID) -> Decimal | None:
        return WalletORM.objects.filter(customer_id=customer_id).values_list("balance", flat=True).first()

    @transaction.atomic
    def save(self, wallet: Wallet) -> UUID:
        """Save wallet aggregate with invariant validation."""
        if wallet.balance < 0:
            raise LedgerIntegrityError(f"Wallet balance cannot be negative: {wallet.balance}")

        calculated_balance = wallet.calculate_balance_from_transactions()
        if wallet.balance != calculated_balance:
            raise LedgerIntegrityError(
                f"Wallet balance {wallet.balance} does not match "
                f"calculated balance {calculated_balance}"
            )

        wallet_orm, _ = WalletORM.objects.update_or_create(
            id=wallet.id,
            defaults={
                "customer_id": wallet.customer_id,
                "balance": wallet.balance,
            },
        )

        # Ledger entries are immutable - only add new ones.
        existing_transaction_ids = set(
            WalletTransactionORM.objects
            .filter(wallet=wallet_orm)
            .values_list("id", flat=True)
        )
        WalletTransactionORM.objects.bulk_create([
            WalletTransactionORM(
                id=entry.id,
                wallet=wallet_orm,
                direction=entry.direction.value,
                status=entry.status.value,
                amount=entry.amount,
                order_id=entry.order_id,
                description=entry.description,
            )
            for entry in wallet.transactions
            if entry.id not in existing_transaction_ids
        ])

        return wallet_orm.id

    def _to_domain(self, wallet_orm: WalletORM) -> Wallet:
        """Convert ORM model to domain entity."""
        transactions = [
            WalletTransaction(
                id=trans_orm.id,
                wallet_id=wallet_orm.id,
                direction=TransactionDirection(trans_orm.direction),
                amount=trans_orm.amount,
                order_id=trans_orm.order_id,
                status=TransactionStatus(trans_orm.status),
                description=trans_orm.description,
                created_at=trans_orm.created_at,
            )
            for trans_orm in wallet_orm.transactions.order_by("created_at", "id")
        ]
        return Wallet(
            id=wallet_orm.id,
            customer_id=wallet_orm.customer_id,
            balance=wallet_orm.balance,
            transactions=transactions,
        )
