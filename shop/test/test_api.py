"""
Integration tests for GraphQL API.
"""
import json
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase

from shop.infra.models import IdempotencyKey, OrderORM
from shop.infra.repositories import WalletRepository
from shop.test.factories import create_admin, create_customer, create_product, stock_of

ORDER_FIELDS = """
    id
    status
    paymentStatus
    paymentMethod
    totalAmount
    cancelledBy
    customer { id name }
    items { productId productName quantity priceAtOrder subtotal }
    timeline { status description location }
"""

DIRECT_ORDER = """
    mutation PlaceDirect($input: DirectOrderInput!) {
        placeDirectOrder(input: $input) { %s }
    }
""" % ORDER_FIELDS

DIRECT_INPUT = {
    "items": [{"name": "Tea Set", "price": "40.00", "quantity": 2}],
    "shippingAddress": {"fullName": "Rahim Uddin", "address": "12 Lake Road", "city": "Dhaka"},
    "paymentMethod": "wallet",
    "email": "rahim@example.com",
}


class GraphQLAPITest(TestCase):
    """Integration tests for GraphQL API."""

    def setUp(self):
        """Set up test data."""
        self.auth = create_customer()
        self.admin = create_admin()
        self.product = create_product(name="Widget", price="10.00", stock=5)

    def execute(self, query, variables=None, auth=None, headers=None):
        request_headers = dict(headers or {})
        if auth is not None:
            request_headers["X-User-ID"] = str(auth.user_id)
        response = self.client.post(
            "/graphql/",
            data=json.dumps({"query": query, "variables": variables or {}}),
            content_type="application/json",
            headers=request_headers,
        )
        return response, response.json()

    def test_cart_to_order(self):
        """Add to cart, place the order, read it back."""
        add = """
            mutation Add($productId: UUID!) {
                addToCart(productId: $productId, quantity: 2) {
                    totalAmount
                    items { productName quantity unitPrice availableStock }
                }
            }
        """
        _, body = self.execute(add, {"productId": str(self.product.id)}, auth=self.auth)
        cart = body["data"]["addToCart"]
        self.assertEqual(cart["totalAmount"], "20.00")
        self.assertEqual(cart["items"][0]["quantity"], 2)

        place = "mutation { placeOrder { %s } }" % ORDER_FIELDS
        response, body = self.execute(place, auth=self.auth)

        self.assertEqual(response.status_code, 200)
        self.assertNotIn("errors", body)
        order = body["data"]["placeOrder"]
        self.assertEqual(order["status"], "pending")
        self.assertEqual(order["paymentMethod"], "card")
        self.assertEqual(order["totalAmount"], "20.00")
        self.assertEqual(order["customer"]["id"], str(self.auth.user_id))
        self.assertEqual(order["items"][0]["productId"], str(self.product.id))
        self.assertEqual(order["timeline"][0]["status"], "pending")
        self.assertEqual(stock_of(self.product), 3)

        query = "query Get($id: UUID!) { order(id: $id) { id status } }"
        _, body = self.execute(query, {"id": order["id"]}, auth=self.auth)
        self.assertEqual(body["data"]["order"]["id"], order["id"])

    def test_place_direct_order(self):
        _, body = self.execute(DIRECT_ORDER, {"input": DIRECT_INPUT}, auth=self.auth)

        order = body["data"]["placeDirectOrder"]
        self.assertEqual(order["paymentStatus"], "paid")
        self.assertEqual(order["totalAmount"], "80.00")
        self.assertIsNone(order["items"][0]["productId"])
        self.assertEqual(order["timeline"][0]["location"], "Shop")

        _, body = self.execute("{ wallet { balance transactions { direction amount orderId } } }", auth=self.auth)
        wallet = body["data"]["wallet"]
        self.assertEqual(wallet["balance"], "920.00")
        self.assertEqual(wallet["transactions"][0]["direction"], "debit")
        self.assertEqual(wallet["transactions"][0]["orderId"], order["id"])

    def test_error_extensions(self):
        """Domain errors carry a code, retryable flag and details."""
        place = "mutation { placeOrder { id } }"
        _, body = self.execute(place, auth=self.auth)

        error = body["errors"][0]
        self.assertEqual(error["extensions"]["code"], "VALIDATION_ERROR")
        self.assertFalse(error["extensions"]["retryable"])
        self.assertIn("Cart is empty", error["message"])

    def test_overlong_item_name_is_not_retryable(self):
        items = [{"name": "Tea Set " * 40, "price": "40.00"}]
        _, body = self.execute(DIRECT_ORDER, {"input": dict(DIRECT_INPUT, items=items)}, auth=self.auth)

        extensions = body["errors"][0]["extensions"]
        self.assertEqual(extensions["code"], "VALIDATION_ERROR")
        self.assertFalse(extensions["retryable"])
        self.assertEqual(OrderORM.objects.count(), 0)

    def test_insufficient_stock_details(self):
        add = "mutation($id: UUID!) { addToCart(productId: $id, quantity: 9) { totalAmount } }"
        _, body = self.execute(add, {"id": str(self.product.id)}, auth=self.auth)

        extensions = body["errors"][0]["extensions"]
        self.assertEqual(extensions["code"], "INSUFFICIENT_STOCK")
        self.assertEqual(extensions["available"], 5)
        self.assertEqual(extensions["requested"], 9)

    def test_requires_authentication(self):
        """Without X-User-ID protected fields report UNAUTHENTICATED."""
        _, body = self.execute("{ cart { totalAmount } }")
        self.assertEqual(body["errors"][0]["extensions"]["code"], "UNAUTHENTICATED")
        self.assertFalse(body["errors"][0]["extensions"]["retryable"])

    def test_unknown_user_rejected(self):
        response, body = self.execute("{ cart { totalAmount } }", headers={"X-User-ID": str(uuid4())})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(body["error"]["code"], "UNAUTHENTICATED")

    def test_customer_cannot_cancel_foreign_order(self):
        _, body = self.execute(DIRECT_ORDER, {"input": DIRECT_INPUT}, auth=self.auth)
        order_id = body["data"]["placeDirectOrder"]["id"]

        cancel = "mutation($id: UUID!) { cancelOrder(orderId: $id) { id } }"
        _, body = self.execute(cancel, {"id": order_id}, auth=create_customer())
        self.assertEqual(body["errors"][0]["extensions"]["code"], "FORBIDDEN")

    def test_admin_cancel_refunds(self):
        _, body = self.execute(DIRECT_ORDER, {"input": DIRECT_INPUT}, auth=self.auth)
        order_id = body["data"]["placeDirectOrder"]["id"]

        cancel = "mutation($id: UUID!) { adminCancelOrder(orderId: $id) { %s } }" % ORDER_FIELDS
        _, body = self.execute(cancel, {"id": order_id}, auth=self.admin)

        order = body["data"]["adminCancelOrder"]
        self.assertEqual(order["status"], "cancelled")
        self.assertEqual(order["cancelledBy"], "admin")
        self.assertEqual(order["paymentStatus"], "refunded")
        self.assertEqual(WalletRepository().get_balance(self.auth.user_id), Decimal("1000.00"))

    def test_admin_workflow(self):
        _, body = self.execute(DIRECT_ORDER, {"input": DIRECT_INPUT}, auth=self.auth)
        order_id = body["data"]["placeDirectOrder"]["id"]

        _, body = self.execute("{ pendingOrders { id } }", auth=self.admin)
        self.assertEqual([o["id"] for o in body["data"]["pendingOrders"]], [order_id])

        approve = "mutation($id: UUID!) { approveOrder(orderId: $id) { status } }"
        _, body = self.execute(approve, {"id": order_id}, auth=self.admin)
        self.assertEqual(body["data"]["approveOrder"]["status"], "confirmed")

        track = """
            mutation($id: UUID!) {
                addTrackingEvent(orderId: $id, status: "processing", location: "Warehouse") {
                    status
                    timeline { status location }
                }
            }
        """
        _, body = self.execute(track, {"id": order_id}, auth=self.admin)
        tracked = body["data"]["addTrackingEvent"]
        self.assertEqual(tracked["status"], "confirmed")
        self.assertEqual(tracked["timeline"][-1], {"status": "processing", "location": "Warehouse"})

        ship = 'mutation($id: UUID!) { updateOrderStatus(orderId: $id, status: "shipped") { status } }'
        _, body = self.execute(ship, {"id": order_id}, auth=self.admin)
        self.assertEqual(body["data"]["updateOrderStatus"]["status"], "shipped")

    def test_pending_orders_admin_only(self):
        _, body = self.execute("{ pendingOrders { id } }", auth=self.auth)
        self.assertEqual(body["errors"][0]["extensions"]["code"], "FORBIDDEN")


class IdempotencyTest(TestCase):
    """Tests for Idempotency-Key handling."""

    def setUp(self):
        self.auth = create_customer()

    def post(self, variables, key):
        return self.client.post(
            "/graphql/",
            data=json.dumps({"query": DIRECT_ORDER, "variables": variables}),
            content_type="application/json",
            headers={"X-User-ID": str(self.auth.user_id), "Idempotency-Key": key},
        )

    def test_replay_returns_cached_response(self):
        """The same key and body places the order once."""
        first = self.post({"input": DIRECT_INPUT}, "key-1")
        second = self.post({"input": DIRECT_INPUT}, "key-1")

        self.assertEqual(first.json(), second.json())
        self.assertEqual(OrderORM.objects.count(), 1)
        self.assertEqual(IdempotencyKey.objects.get().operation, "PLACE_DIRECT_ORDER")
        self.assertEqual(WalletRepository().get_balance(self.auth.user_id), Decimal("920.00"))

    def test_key_reuse_with_different_body(self):
        self.post({"input": DIRECT_INPUT}, "key-2")
        changed = dict(DIRECT_INPUT, email="other@example.com")
        response = self.post({"input": changed}, "key-2")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "DUPLICATE_REQUEST")
        self.assertEqual(OrderORM.objects.count(), 1)

    def test_failed_attempt_not_cached(self):
        """A failed mutation can be retried with the same key."""
        expensive = dict(DIRECT_INPUT, items=[{"name": "Sofa", "price": "5000.00"}])
        response = self.post({"input": expensive}, "key-3")

        self.assertEqual(response.json()["errors"][0]["extensions"]["code"], "INSUFFICIENT_BALANCE")
        self.assertFalse(IdempotencyKey.objects.exists())
