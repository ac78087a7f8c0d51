"""
Domain exceptions.

Every error carries a stable ``code`` that the API layer exposes to clients.
Only integrity errors are safe for a caller to retry.
"""
from __future__ import annotations


class ShopError(Exception):
    """Base exception for all storefront errors."""

    code = "SHOP_ERROR"
    retryable = False

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(ShopError, ValueError):
    """Rejected input (empty cart, bad address, bad quantity)."""

    code = "VALIDATION_ERROR"


class NotFoundError(ShopError):
    """Unknown order, product, customer or cart line."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=str(entity_id))


class AuthenticationRequiredError(ShopError):
    """No caller identity on a request that needs one."""

    code = "UNAUTHENTICATED"


class PermissionDeniedError(ShopError):
    """Caller is not the owner or lacks the admin role."""

    code = "FORBIDDEN"


class ConflictError(ShopError):
    """Request conflicts with current stock, availability or balance."""

    code = "CONFLICT"


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f'Not enough stock for "{product_name}". '
            f"Available: {available}, requested: {requested}",
            product=product_name,
            available=available,
            requested=requested,
        )


class ProductUnavailableError(ConflictError):
    code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_name: str):
        super().__init__(f'Product "{product_name}" is no longer available', product=product_name)


class InsufficientBalanceError(ConflictError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, balance, required):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient wallet balance. Available: {balance}, required: {required}",
            balance=str(balance),
            required=str(required),
        )


class InvalidStateError(ShopError):
    """Operation not allowed in the order's current state."""

    code = "INVALID_STATE"


class CancellationLimitError(InvalidStateError):
    """Customer exceeded the rolling cancellation cap."""

    code = "CANCELLATION_LIMIT"

    def __init__(self, limit: int, window_days: int):
        self.limit = limit
        self.window_days = window_days
        super().__init__(
            f"You have reached the limit of {limit} order cancellations "
            f"in the last {window_days} days. Contact support if needed.",
            limit=limit,
            window_days=window_days,
        )


class LedgerIntegrityError(ShopError):
    """Persisted state would break a ledger invariant; the attempt was rolled back."""

    code = "INTEGRITY_ERROR"
    retryable = True
