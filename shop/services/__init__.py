"""
Application services for ordering, cancellation, cart and wallet.
"""
from shop.services.auth import AuthContext
from shop.services.cancellation import CancellationService
from shop.services.cart import CartService
from shop.services.direct import DirectPlacementService
from shop.services.orders import OrderService
from shop.services.placement import OrderPlacementService
from shop.services.wallet import WalletService

__all__ = [
    "AuthContext",
    "CancellationService",
    "CartService",
    "DirectPlacementService",
    "OrderPlacementService",
    "OrderService",
    "WalletService",
]
