"""
Storefront configuration passed to services at construction time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings


@dataclass(frozen=True)
class ShopConfig:
    max_customer_cancellations: int = 3
    cancellation_window_days: int = 30
    default_wallet_balance: Decimal = Decimal("1000.00")
    default_country: str = "Bangladesh"

    @property
    def cancellation_window(self) -> timedelta:
        return timedelta(days=self.cancellation_window_days)

    @classmethod
    def from_settings(cls) -> "ShopConfig":
        """Build config from the ``SHOP`` settings dict."""
        values = getattr(settings, "SHOP", {})
        return cls(
            max_customer_cancellations=int(
                values.get("MAX_CUSTOMER_CANCELLATIONS", cls.max_customer_cancellations)
            ),
            cancellation_window_days=int(
                values.get("CANCELLATION_WINDOW_DAYS", cls.cancellation_window_days)
            ),
            default_wallet_balance=Decimal(
                str(values.get("DEFAULT_WALLET_BALANCE", cls.default_wallet_balance))
            ),
            default_country=values.get("DEFAULT_COUNTRY", cls.default_country),
        )
