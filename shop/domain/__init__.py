from shop.domain.cart import Cart, CartLine
from shop.domain.order import Order, OrderItem, OrderStatus, PaymentStatus
from shop.domain.product import Product
from shop.domain.wallet import Wallet, WalletTransaction

__all__ = [
    "Cart",
    "CartLine",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "Wallet",
    "WalletTransaction",
]
