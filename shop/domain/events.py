"""
Domain events written to the transactional outbox.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class EventVersion(str, Enum):
    """Event version for upcasting."""
    V1 = "1.0"


@dataclass
class DomainEvent:
    """Base domain event."""
    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4, kw_only=True)
    version: EventVersion = field(default=EventVersion.V1, kw_only=True)
    occurred_at: str = field(default="", kw_only=True)

    aggregate_type = "Order"

    @property
    def event_type(self) -> str:
        return type(self).__name__


# Order events
@dataclass
class OrderPlaced(DomainEvent):
    customer_id: UUID
    total_amount: Decimal
    items_count: int
    payment_method: str
    source: str


@dataclass
class OrderStatusChanged(DomainEvent):
    from_status: str
    to_status: str


@dataclass
class OrderCancelled(DomainEvent):
    cancelled_by: str
    stock_restored: bool


@dataclass
class OrderPaid(DomainEvent):
    amount: Decimal


@dataclass
class OrderRefunded(DomainEvent):
    amount: Decimal
    wallet_credited: bool


# Wallet events
@dataclass
class WalletDebited(DomainEvent):
    amount: Decimal
    new_balance: Decimal
    order_id: UUID | None = None

    aggregate_type = "Wallet"


@dataclass
class WalletCredited(DomainEvent):
    amount: Decimal
    new_balance: Decimal
    order_id: UUID | None = None

    aggregate_type = "Wallet"


# Inventory events
@dataclass
class StockAdjusted(DomainEvent):
    delta: int
    order_id: UUID | None = None

    aggregate_type = "Product"
