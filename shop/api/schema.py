"""
GraphQL schema definition using Ariadne.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID

from ariadne import (
    MutationType,
    ObjectType,
    QueryType,
    ScalarType,
    load_schema_from_path,
    make_executable_schema,
)

from shop.config import ShopConfig
from shop.domain.exceptions import AuthenticationRequiredError
from shop.services import (
    AuthContext,
    CancellationService,
    CartService,
    DirectPlacementService,
    OrderPlacementService,
    OrderService,
    WalletService,
)

SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common"),
    load_schema_from_path(SCHEMAS_DIR / "query"),
    load_schema_from_path(SCHEMAS_DIR / "mutation"),
])

query = QueryType()
mutation = MutationType()
order = ObjectType("Order")
timeline_entry = ObjectType("TimelineEntry")
wallet = ObjectType("Wallet")
wallet_transaction = ObjectType("WalletTransaction")


def _auth(info) -> AuthContext:
    auth = info.context.get("auth")
    if auth is None:
        raise AuthenticationRequiredError("Authentication required")
    return auth


def _config(info) -> ShopConfig:
    return info.context.get("config") or ShopConfig.from_settings()


def _enum_value(value):
    return value.value if value is not None else None


# Queries

@query.field("cart")
def resolve_cart(_, info):
    return CartService().get_cart(_auth(info))


@query.field("order")
def resolve_order(_, info, id):
    return OrderService(config=_config(info)).get_order(_auth(info), id)


@query.field("myOrders")
def resolve_my_orders(_, info, limit=50, offset=0):
    return OrderService(config=_config(info)).list_orders(_auth(info), limit=limit, offset=offset)


@query.field("allOrders")
def resolve_all_orders(_, info, status=None, limit=50, offset=0):
    return OrderService(config=_config(info)).list_all_orders(
        _auth(info), status=status, limit=limit, offset=offset
    )


@query.field("pendingOrders")
def resolve_pending_orders(_, info):
    return OrderService(config=_config(info)).pending_orders(_auth(info))


@query.field("wallet")
def resolve_wallet(_, info):
    return WalletService(config=_config(info)).get_wallet(_auth(info))


# Cart mutations

@mutation.field("addToCart")
def resolve_add_to_cart(_, info, product_id, quantity=1):
    return CartService().add_item(_auth(info), product_id, quantity)


@mutation.field("updateCartItem")
def resolve_update_cart_item(_, info, product_id, quantity):
    return CartService().update_item(_auth(info), product_id, quantity)


@mutation.field("removeFromCart")
def resolve_remove_from_cart(_, info, product_id):
    return CartService().remove_item(_auth(info), product_id)


# Order mutations

@mutation.field("placeOrder")
def resolve_place_order(_, info, payment_simulation=False):
    """Convert the caller's cart into an order."""
    return OrderPlacementService(config=_config(info)).place_order(
        _auth(info), payment_simulation=bool(payment_simulation)
    )


@mutation.field("placeDirectOrder")
def resolve_place_direct_order(_, info, input: dict):
    """Place an order from inline items supplied by an external storefront."""
    return DirectPlacementService(config=_config(info)).place_direct_order(
        _auth(info),
        items=input["items"],
        shipping_address=input.get("shipping_address"),
        payment_method=input.get("payment_method"),
        email=input.get("email"),
        total_amount=input.get("total_amount"),
    )


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, order_id):
    return CancellationService(config=_config(info)).cancel_by_customer(_auth(info), order_id)


@mutation.field("payOrder")
def resolve_pay_order(_, info, order_id):
    return OrderService(config=_config(info)).pay_order(_auth(info), order_id)


@mutation.field("approveOrder")
def resolve_approve_order(_, info, order_id):
    return OrderService(config=_config(info)).approve_order(_auth(info), order_id)


@mutation.field("updateOrderStatus")
def resolve_update_order_status(_, info, order_id, status):
    return OrderService(config=_config(info)).update_status(_auth(info), order_id, status)


@mutation.field("addTrackingEvent")
def resolve_add_tracking_event(_, info, order_id, status, description=None, location=None):
    return OrderService(config=_config(info)).add_tracking_event(
        _auth(info), order_id, status, description=description, location=location
    )


@mutation.field("adminCancelOrder")
def resolve_admin_cancel_order(_, info, order_id):
    return CancellationService(config=_config(info)).cancel_by_admin(_auth(info), order_id)


# Object fields

@order.field("customer")
def resolve_order_customer(obj, info):
    return obj.owner


@order.field("status")
def resolve_order_status(obj, info):
    return obj.status.value


@order.field("paymentStatus")
def resolve_order_payment_status(obj, info):
    return obj.payment_status.value


@order.field("paymentMethod")
def resolve_order_payment_method(obj, info):
    return obj.payment_method.value


@order.field("cancelledBy")
def resolve_order_cancelled_by(obj, info):
    return _enum_value(obj.cancelled_by)


@timeline_entry.field("status")
def resolve_timeline_status(obj, info):
    return obj.status.value


@wallet.field("transactions")
def resolve_wallet_transactions(obj, info):
    """Newest first."""
    return list(reversed(obj.transactions))


@wallet_transaction.field("direction")
def resolve_transaction_direction(obj, info):
    return obj.direction.value


@wallet_transaction.field("status")
def resolve_transaction_status(obj, info):
    return obj.status.value


# Scalars

decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal: {value!r}")


@uuid_scalar.serializer
def serialize_uuid(value):
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@uuid_scalar.literal_parser
def parse_uuid_literal(ast, variables=None):
    return UUID(str(ast.value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    order,
    timeline_entry,
    wallet,
    wallet_transaction,
    datetime_scalar,
    decimal_scalar,
    uuid_scalar,
    convert_names_case=True,
)
