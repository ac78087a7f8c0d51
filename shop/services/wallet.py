"""
Wallet reads for the authenticated customer.
"""
from __future__ import annotations

from decimal import Decimal

from shop.config import ShopConfig
from shop.domain.wallet import Wallet, WalletTransaction
from shop.infra.repositories import WalletRepository
from shop.services.auth import AuthContext


class WalletService:
    """Service for wallet operations."""

    def __init__(
        self,
        config: ShopConfig | None = None,
        wallet_repo: WalletRepository | None = None,
    ):
        self.config = config or ShopConfig.from_settings()
        self.wallet_repo = wallet_repo or WalletRepository()

    def get_wallet(self, auth: AuthContext) -> Wallet:
        """Get the caller's wallet, opening it with the default balance if needed."""
        return self.wallet_repo.get_or_create(auth.user_id, self.config.default_wallet_balance)

    def get_balance(self, auth: AuthContext) -> Decimal:
        return self.get_wallet(auth).balance

    def get_transactions(self, auth: AuthContext) -> list[WalletTransaction]:
        """Ledger entries, newest first."""
        return list(reversed(self.get_wallet(auth).transactions))
