"""
Domain model for Order aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID, uuid4

from shop.domain.exceptions import InvalidStateError, ValidationError

CENT = Decimal("0.01")

# Column widths of the order tables.
TEXT_MAX_LENGTH = 255
URL_MAX_LENGTH = 1000


def to_money(value) -> Decimal:
    """Parse a money amount and quantize it to cents."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT)


def check_length(value: str | None, max_length: int, label: str) -> None:
    if value is not None and len(value) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters", field=label)


class OrderStatus(str, Enum):
    """Coarse order status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    CARD = "card"


class CancelledBy(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class TimelineStatus(str, Enum):
    """Delivery checkpoints shown to the customer."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHOP_TO_DELIVERY = "shop-to-delivery"
    IN_TRANSIT = "in-transit"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Forward-only; cancelled is reachable from pending and confirmed only.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

TRACKING_SEQUENCE = (
    TimelineStatus.PENDING,
    TimelineStatus.CONFIRMED,
    TimelineStatus.PROCESSING,
    TimelineStatus.SHOP_TO_DELIVERY,
    TimelineStatus.IN_TRANSIT,
    TimelineStatus.OUT_FOR_DELIVERY,
    TimelineStatus.DELIVERED,
)

# Checkpoints an admin may record between confirmation and delivery.
SUB_TRACKING_STATUSES = frozenset({
    TimelineStatus.PROCESSING,
    TimelineStatus.SHOP_TO_DELIVERY,
    TimelineStatus.IN_TRANSIT,
    TimelineStatus.OUT_FOR_DELIVERY,
})

ORDER_PLACED_DESCRIPTION = "Your order has been placed successfully"


class OrderItem:
    """Order line: a frozen snapshot of a product at order time."""

    def __init__(
        self,
        product_name: str,
        quantity: int,
        price_at_order: Decimal,
        product_id: UUID | None = None,
        image_url: str | None = None,
    ):
        if not product_name:
            raise ValidationError("Product name is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")
        if price_at_order < 0:
            raise ValidationError("Price must be non-negative")
        check_length(product_name, TEXT_MAX_LENGTH, "Product name")
        check_length(image_url, URL_MAX_LENGTH, "Image URL")

        self._product_name = product_name
        self._quantity = quantity
        self._price_at_order = price_at_order
        self._product_id = product_id
        self._image_url = image_url

    @property
    def product_name(self) -> str:
        return self._product_name

    @property
    def quantity(self) -> int:
        return self._quantity

    @property
    def price_at_order(self) -> Decimal:
        return self._price_at_order

    @property
    def product_id(self) -> UUID | None:
        return self._product_id

    @property
    def image_url(self) -> str | None:
        return self._image_url

    @property
    def subtotal(self) -> Decimal:
        """Calculate line subtotal."""
        return self._price_at_order * self._quantity


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    phone: str = ""
    country: str = "Bangladesh"

    def validate(self) -> None:
        if not self.full_name or not self.address:
            raise ValidationError("Complete shipping address is required")
        for label, value in self.as_dict().items():
            check_length(value, TEXT_MAX_LENGTH, label)

    def as_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "address": self.address,
            "city": self.city,
            "postal_code": self.postal_code,
            "phone": self.phone,
            "country": self.country,
        }


@dataclass(frozen=True)
class TimelineEntry:
    status: TimelineStatus
    description: str
    timestamp: datetime
    location: str | None = None


@dataclass(frozen=True)
class OwnerSummary:
    """Owner info attached to orders returned to callers."""
    id: UUID
    name: str
    email: str


class Order:
    """Order aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        customer_id: UUID | None = None,
        items: list[OrderItem] | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        payment_method: PaymentMethod = PaymentMethod.WALLET,
        shipping_address: ShippingAddress | None = None,
        notes: str | None = None,
        cancelled_at: datetime | None = None,
        cancelled_by: CancelledBy | None = None,
        timeline: list[TimelineEntry] | None = None,
        created_at: datetime | None = None,
        owner: OwnerSummary | None = None,
    ):
        self.id = id or uuid4()
        self.customer_id = customer_id
        self._items = items or []
        self._status = status
        self._payment_status = payment_status
        self.payment_method = payment_method
        self.shipping_address = shipping_address
        self.notes = notes
        self._cancelled_at = cancelled_at
        self._cancelled_by = cancelled_by
        self._timeline = timeline or []
        self.created_at = created_at
        self.owner = owner

    @classmethod
    def place(
        cls,
        customer_id: UUID,
        items: list[OrderItem],
        placed_at: datetime,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        payment_method: PaymentMethod = PaymentMethod.WALLET,
        shipping_address: ShippingAddress | None = None,
        notes: str | None = None,
        location: str | None = None,
    ) -> "Order":
        """Create a new pending order with its first timeline entry."""
        if not items:
            raise ValidationError("Order must contain at least one item")
        order = cls(
            customer_id=customer_id,
            items=items,
            payment_status=payment_status,
            payment_method=payment_method,
            shipping_address=shipping_address,
            notes=notes,
            created_at=placed_at,
        )
        order.add_timeline_entry(
            TimelineStatus.PENDING, ORDER_PLACED_DESCRIPTION, placed_at, location=location
        )
        return order

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (immutable)."""
        return list(self._items)

    @property
    def timeline(self) -> list[TimelineEntry]:
        return list(self._timeline)

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def payment_status(self) -> PaymentStatus:
        return self._payment_status

    @property
    def cancelled_at(self) -> datetime | None:
        return self._cancelled_at

    @property
    def cancelled_by(self) -> CancelledBy | None:
        return self._cancelled_by

    @property
    def total_amount(self) -> Decimal:
        """Calculate total order amount from line subtotals."""
        return sum((item.subtotal for item in self._items), Decimal("0.00"))

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def can_transition_to(self, status: OrderStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self._status]

    def transition_to(self, status: OrderStatus) -> None:
        """Move the coarse status along the state machine."""
        if status == OrderStatus.CANCELLED:
            raise InvalidStateError("Use cancel() to cancel an order")
        if not self.can_transition_to(status):
            raise InvalidStateError(
                f"Cannot change order status from {self._status.value} to {status.value}",
                current_status=self._status.value,
                requested_status=status.value,
            )
        self._status = status

    def confirm(self, at: datetime, description: str = "Order approved by admin") -> None:
        """Confirm order (move from pending to confirmed)."""
        self.transition_to(OrderStatus.CONFIRMED)
        self.add_timeline_entry(TimelineStatus.CONFIRMED, description, at)

    def ensure_cancellable(self) -> None:
        if not self.can_transition_to(OrderStatus.CANCELLED):
            raise InvalidStateError(
                f"Order cannot be cancelled. Current status: {self._status.value}",
                current_status=self._status.value,
            )

    def cancel(self, by: CancelledBy, at: datetime) -> None:
        """Cancel order and record who cancelled it."""
        self.ensure_cancellable()
        self._status = OrderStatus.CANCELLED
        self._cancelled_at = at
        self._cancelled_by = by

    def mark_paid(self) -> None:
        """Mark order as paid."""
        if self._status == OrderStatus.CANCELLED:
            raise InvalidStateError("Cannot pay for a cancelled order")
        if self._payment_status == PaymentStatus.PAID:
            raise InvalidStateError("Order is already paid")
        if self._payment_status == PaymentStatus.REFUNDED:
            raise InvalidStateError("Order has been refunded")
        self._payment_status = PaymentStatus.PAID

    def mark_refunded(self) -> None:
        """Mark a paid order as refunded."""
        if self._payment_status != PaymentStatus.PAID:
            raise InvalidStateError("Can only refund paid orders")
        self._payment_status = PaymentStatus.REFUNDED

    def add_timeline_entry(
        self,
        status: TimelineStatus,
        description: str,
        at: datetime,
        location: str | None = None,
    ) -> TimelineEntry:
        check_length(description, TEXT_MAX_LENGTH, "Description")
        check_length(location, TEXT_MAX_LENGTH, "Location")
        entry = TimelineEntry(status=status, description=description, timestamp=at, location=location)
        self._timeline.append(entry)
        return entry

    def add_tracking_event(
        self,
        status: TimelineStatus,
        description: str,
        at: datetime,
        location: str | None = None,
    ) -> TimelineEntry:
        """Append a delivery checkpoint without touching the coarse status."""
        if self.is_terminal:
            raise InvalidStateError(
                f"Cannot track a {self._status.value} order",
                current_status=self._status.value,
            )
        if status not in SUB_TRACKING_STATUSES:
            raise ValidationError(f"Invalid tracking status: {status.value}")
        last = self.last_tracking_status
        if last is not None and TRACKING_SEQUENCE.index(status) <= TRACKING_SEQUENCE.index(last):
            raise InvalidStateError(
                f"Tracking cannot move from {last.value} to {status.value}",
                current_tracking_status=last.value,
            )
        return self.add_timeline_entry(status, description, at, location=location)

    @property
    def last_tracking_status(self) -> TimelineStatus | None:
        for entry in reversed(self._timeline):
            if entry.status in TRACKING_SEQUENCE:
                return entry.status
        return None
