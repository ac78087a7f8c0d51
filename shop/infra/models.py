from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from django.core.validators import MinValueValidator
from django.db import models

from shop.domain.order import (
    CancelledBy,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TimelineStatus,
)
from shop.domain.wallet import TransactionDirection, TransactionStatus


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace("-", " ").capitalize()) for member in enum_cls]


OPERATION_TYPE = (
    ("PLACE_ORDER", "Place order from cart"),
    ("PLACE_DIRECT_ORDER", "Place direct order"),
    ("CANCEL_ORDER", "Customer cancellation"),
    ("ADMIN_CANCEL_ORDER", "Admin cancellation"),
    ("PAY_ORDER", "Simulated payment"),
)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CustomerORM(TimeStampedModel):
    ROLE_CHOICES = (
        ("customer", "Customer"),
        ("admin", "Admin"),
    )

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default="customer")
    is_active = models.BooleanField(default=True)

    class Meta:
        indexes = [
            models.Index(fields=("email",)),
        ]

    def __str__(self):
        return f"{self.name} <{self.email}>"


class ProductORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(default="", blank=True)
    category = models.CharField(max_length=100, default="general")
    image_url = models.URLField(null=True, blank=True)
    price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    # Mutated only through ProductRepository.adjust_stock.
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        indexes = [
            models.Index(fields=("is_active", "category")),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(stock__gte=0), name="product_stock_non_negative"),
        ]

    def __str__(self):
        return self.name


class CartORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    customer = models.OneToOneField(
        CustomerORM,
        on_delete=models.CASCADE,
        related_name="cart",
    )


class CartItemORM(TimeStampedModel):
    cart = models.ForeignKey(
        CartORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        ProductORM,
        on_delete=models.CASCADE,
        related_name="+",
    )
    quantity = models.PositiveIntegerField()
    position = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = [("cart", "product")]
        ordering = ["position", "id"]


class WalletORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    customer = models.OneToOneField(
        CustomerORM,
        on_delete=models.PROTECT,
        related_name="wallet",
    )
    # Kept equal to the sum of completed transactions by WalletRepository.save.
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        indexes = [
            models.Index(fields=("customer",)),
        ]


class WalletTransactionORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    wallet = models.ForeignKey(
        WalletORM,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    direction = models.CharField(max_length=8, choices=_choices(TransactionDirection))
    status = models.CharField(
        max_length=16,
        choices=_choices(TransactionStatus),
        default=TransactionStatus.COMPLETED.value,
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    order_id = models.UUIDField(null=True, blank=True)
    description = models.TextField(default="")

    class Meta:
        indexes = [
            models.Index(fields=("wallet", "created_at")),
            models.Index(fields=("order_id",)),
        ]


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    customer = models.ForeignKey(
        CustomerORM,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=_choices(OrderStatus))
    payment_status = models.CharField(max_length=16, choices=_choices(PaymentStatus))
    payment_method = models.CharField(max_length=16, choices=_choices(PaymentMethod))
    shipping_address = models.JSONField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(
        max_length=16, choices=_choices(CancelledBy), null=True, blank=True
    )

    class Meta:
        indexes = [
            models.Index(fields=("customer", "status")),
            models.Index(fields=("customer", "cancelled_by", "cancelled_at")),
            models.Index(fields=("status", "created_at")),
        ]


class OrderItemORM(models.Model):
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        ProductORM,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    price_at_order = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    image_url = models.URLField(max_length=1000, null=True, blank=True)

    class Meta:
        ordering = ["id"]


class OrderTimelineEntryORM(models.Model):
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="timeline",
    )
    status = models.CharField(max_length=32, choices=_choices(TimelineStatus))
    description = models.CharField(max_length=255)
    timestamp = models.DateTimeField()
    location = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        ordering = ["id"]


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.UUIDField()
    operation = models.CharField(max_length=32, choices=OPERATION_TYPE)
    request_hash = models.CharField(max_length=64)
    response_payload = models.JSONField()

    class Meta:
        unique_together = [("key", "user_id", "operation")]
        indexes = [
            models.Index(fields=("request_hash",)),
        ]
