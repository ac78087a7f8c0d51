"""
Domain model for Wallet aggregate.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from shop.domain.exceptions import InsufficientBalanceError, ValidationError


class TransactionDirection(str, Enum):
    """Wallet transaction direction."""
    DEBIT = "debit"
    CREDIT = "credit"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WalletTransaction:
    """Immutable wallet ledger entry."""

    def __init__(
        self,
        id: UUID,
        wallet_id: UUID,
        direction: TransactionDirection,
        amount: Decimal,
        order_id: UUID | None = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        description: str = "",
        created_at: datetime | None = None,
    ):
        if amount <= 0:
            raise ValidationError("Transaction amount must be positive")

        self.id = id
        self.wallet_id = wallet_id
        self.direction = direction
        self.amount = amount
        self.order_id = order_id
        self.status = status
        self.description = description
        self.created_at = created_at

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == TransactionDirection.CREDIT:
            return self.amount
        return -self.amount


class Wallet:
    """Wallet aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        customer_id: UUID | None = None,
        balance: Decimal = Decimal("0.00"),
        transactions: list[WalletTransaction] | None = None,
    ):
        self.id = id or uuid4()
        self.customer_id = customer_id
        self._balance = balance
        self._transactions = transactions or []

    @property
    def balance(self) -> Decimal:
        """Get current wallet balance."""
        return self._balance

    @property
    def transactions(self) -> list[WalletTransaction]:
        """Get wallet transactions (immutable)."""
        return list(self._transactions)

    def can_afford(self, amount: Decimal) -> bool:
        return self._balance >= amount

    def debit(self, amount: Decimal, order_id: UUID | None, description: str = "") -> WalletTransaction:
        """Debit (withdraw) from wallet for an order."""
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        if not self.can_afford(amount):
            raise InsufficientBalanceError(self._balance, amount)

        return self._apply(TransactionDirection.DEBIT, amount, order_id, description)

    def credit(self, amount: Decimal, order_id: UUID | None, description: str = "") -> WalletTransaction:
        """Credit (deposit) to wallet."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        return self._apply(TransactionDirection.CREDIT, amount, order_id, description)

    def _apply(
        self,
        direction: TransactionDirection,
        amount: Decimal,
        order_id: UUID | None,
        description: str,
    ) -> WalletTransaction:
        # Balance only moves together with exactly one ledger entry.
        transaction = WalletTransaction(
            id=uuid4(),
            wallet_id=self.id,
            direction=direction,
            amount=amount,
            order_id=order_id,
            status=TransactionStatus.COMPLETED,
            description=description,
        )
        self._balance += transaction.signed_amount
        self._transactions.append(transaction)
        return transaction

    def calculate_balance_from_transactions(self) -> Decimal:
        """Calculate balance from completed transactions (for validation)."""
        balance = Decimal("0.00")
        for transaction in self._transactions:
            if transaction.status == TransactionStatus.COMPLETED:
                balance += transaction.signed_amount
        return balance
