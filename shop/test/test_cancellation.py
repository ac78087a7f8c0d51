"""
Tests for customer and admin cancellation.
"""
from contextlib import contextmanager
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from shop.config import ShopConfig
from shop.domain.exceptions import (
    CancellationLimitError,
    InvalidStateError,
    PermissionDeniedError,
)
from shop.domain.order import CancelledBy, OrderStatus, PaymentStatus, TimelineStatus
from shop.domain.wallet import TransactionDirection
from shop.infra.locks import cancellation_lock
from shop.infra.models import OrderORM
from shop.infra.outbox import OutboxEvent
from shop.infra.repositories import WalletRepository
from shop.services import (
    CancellationService,
    CartService,
    DirectPlacementService,
    OrderPlacementService,
    OrderService,
)
from shop.test.factories import (
    SHIPPING_ADDRESS,
    create_admin,
    create_customer,
    create_product,
    stock_of,
)

CARD_ITEMS = [{"name": "Lamp", "price": "15.00", "quantity": 1}]


class CustomerCancellationTest(TestCase):
    """Tests for the customer cancellation path."""

    def setUp(self):
        self.auth = create_customer()
        self.product = create_product(stock=5)
        self.service = CancellationService()
        self.wallet_repo = WalletRepository()

    def place_cart_order(self, quantity=2, payment_simulation=False):
        CartService().add_item(self.auth, self.product.id, quantity)
        return OrderPlacementService().place_order(self.auth, payment_simulation=payment_simulation)

    def place_card_order(self):
        return DirectPlacementService().place_direct_order(
            self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="card"
        )

    def test_cancel_restores_stock(self):
        """Customer cancel puts the ordered quantity back on the shelf."""
        order = self.place_cart_order(quantity=2)
        self.assertEqual(stock_of(self.product), 3)

        cancelled = self.service.cancel_by_customer(self.auth, order.id)

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertEqual(cancelled.cancelled_by, CancelledBy.CUSTOMER)
        self.assertIsNotNone(cancelled.cancelled_at)
        self.assertEqual(stock_of(self.product), 5)

    def test_paid_order_refunded_without_wallet_credit(self):
        """A paid order is marked refunded but the wallet is not credited."""
        order = DirectPlacementService().place_direct_order(
            self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="wallet"
        )
        self.assertEqual(self.wallet_repo.get_balance(self.auth.user_id), Decimal("985.00"))

        cancelled = self.service.cancel_by_customer(self.auth, order.id)

        self.assertEqual(cancelled.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(self.wallet_repo.get_balance(self.auth.user_id), Decimal("985.00"))
        refunded = OutboxEvent.objects.get(aggregate_id=order.id, event_type="OrderRefunded")
        self.assertFalse(refunded.event_data["wallet_credited"])

    def test_direct_lines_not_restocked(self):
        """Lines without a product reference leave inventory alone."""
        order = self.place_card_order()
        self.service.cancel_by_customer(self.auth, order.id)
        self.assertEqual(stock_of(self.product), 5)

    def test_only_owner_can_cancel(self):
        order = self.place_card_order()
        other = create_customer()

        with self.assertRaises(PermissionDeniedError) as context:
            self.service.cancel_by_customer(other, order.id)
        self.assertIn("your own order", str(context.exception))

    def test_second_cancel_rejected(self):
        """Cancelling twice fails and changes nothing."""
        order = self.place_cart_order(quantity=1)
        self.service.cancel_by_customer(self.auth, order.id)

        with self.assertRaises(InvalidStateError):
            self.service.cancel_by_customer(self.auth, order.id)
        self.assertEqual(stock_of(self.product), 5)

    def test_shipped_order_not_cancellable(self):
        admin = create_admin()
        order = self.place_card_order()
        orders = OrderService()
        orders.approve_order(admin, order.id)
        orders.update_status(admin, order.id, "shipped")

        with self.assertRaises(InvalidStateError):
            self.service.cancel_by_customer(self.auth, order.id)

    def test_cancellation_limit(self):
        """The fourth cancellation inside the window is refused."""
        orders = [self.place_card_order() for _ in range(4)]
        for order in orders[:3]:
            self.service.cancel_by_customer(self.auth, order.id)

        with self.assertRaises(CancellationLimitError) as context:
            self.service.cancel_by_customer(self.auth, orders[3].id)

        self.assertEqual(context.exception.limit, 3)
        self.assertEqual(context.exception.window_days, 30)
        self.assertEqual(
            OrderORM.objects.get(id=orders[3].id).status, OrderStatus.PENDING.value
        )

    def test_old_cancellations_fall_out_of_window(self):
        orders = [self.place_card_order() for _ in range(4)]
        for order in orders[:3]:
            self.service.cancel_by_customer(self.auth, order.id)
        OrderORM.objects.filter(status="cancelled").update(
            cancelled_at=timezone.now() - timedelta(days=31)
        )

        cancelled = self.service.cancel_by_customer(self.auth, orders[3].id)
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)

    def test_admin_cancellations_do_not_count(self):
        """Only customer-initiated cancellations count towards the cap."""
        admin = create_admin()
        orders = [self.place_card_order() for _ in range(4)]
        for order in orders[:3]:
            self.service.cancel_by_admin(admin, order.id)

        cancelled = self.service.cancel_by_customer(self.auth, orders[3].id)
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)

    def test_limit_is_configurable(self):
        service = CancellationService(config=ShopConfig(max_customer_cancellations=1))
        first, second = self.place_card_order(), self.place_card_order()
        service.cancel_by_customer(self.auth, first.id)

        with self.assertRaises(CancellationLimitError):
            service.cancel_by_customer(self.auth, second.id)

    def test_limit_counted_under_customer_lock(self):
        """Past cancellations are counted and the order written while the customer lock is held."""
        calls = []
        count = self.service.order_repo.count_customer_cancellations
        save = self.service.order_repo.save

        @contextmanager
        def recording_lock(customer_id):
            calls.append(("lock", customer_id))
            with cancellation_lock(customer_id):
                yield
            calls.append(("unlock", customer_id))

        def recording_count(customer_id, since):
            calls.append(("count", customer_id))
            return count(customer_id, since=since)

        def recording_save(order):
            calls.append(("save", order.customer_id))
            return save(order)

        order = self.place_card_order()
        with mock.patch("shop.services.cancellation.cancellation_lock", recording_lock), \
                mock.patch.object(self.service.order_repo, "count_customer_cancellations", recording_count), \
                mock.patch.object(self.service.order_repo, "save", recording_save):
            self.service.cancel_by_customer(self.auth, order.id)

        self.assertEqual([step for step, _ in calls], ["lock", "count", "save", "unlock"])
        self.assertTrue(all(customer_id == self.auth.user_id for _, customer_id in calls))

    def test_postgres_cancellation_lock_is_per_customer(self):
        """On PostgreSQL the lock is a transaction-scoped advisory lock keyed by customer."""
        connection = mock.MagicMock(vendor="postgresql")
        cursor = connection.cursor.return_value.__enter__.return_value

        with mock.patch("shop.infra.locks.connection", connection):
            with cancellation_lock(self.auth.user_id):
                pass

        sql, params = cursor.execute.call_args.args
        self.assertIn("pg_advisory_xact_lock", sql)
        self.assertEqual(params, [f"cancellations:{self.auth.user_id}"])


class AdminCancellationTest(TestCase):
    """Tests for the admin cancellation path."""

    def setUp(self):
        self.admin = create_admin()
        self.auth = create_customer()
        self.product = create_product(stock=5)
        self.service = CancellationService()
        self.wallet_repo = WalletRepository()

    def test_admin_cancel_refunds_wallet(self):
        """A paid wallet order is credited back in full."""
        order = DirectPlacementService().place_direct_order(
            self.auth,
            [{"name": "Chair", "price": "100.00", "quantity": 1}],
            SHIPPING_ADDRESS,
            payment_method="wallet",
        )
        self.assertEqual(self.wallet_repo.get_balance(self.auth.user_id), Decimal("900.00"))

        cancelled = self.service.cancel_by_admin(self.admin, order.id)

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertEqual(cancelled.cancelled_by, CancelledBy.ADMIN)
        self.assertEqual(cancelled.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(cancelled.timeline[-1].status, TimelineStatus.CANCELLED)
        self.assertEqual(cancelled.timeline[-1].description, "Order cancelled by admin - refund processed")

        wallet = self.wallet_repo.get_by_customer_id(self.auth.user_id)
        self.assertEqual(wallet.balance, Decimal("1000.00"))
        credit = wallet.transactions[-1]
        self.assertEqual(credit.direction, TransactionDirection.CREDIT)
        self.assertEqual(credit.amount, Decimal("100.00"))
        self.assertEqual(credit.order_id, order.id)
        self.assertEqual(wallet.calculate_balance_from_transactions(), wallet.balance)

    def test_admin_cancel_does_not_restore_stock(self):
        CartService().add_item(self.auth, self.product.id, 2)
        order = OrderPlacementService().place_order(self.auth)

        self.service.cancel_by_admin(self.admin, order.id)

        self.assertEqual(stock_of(self.product), 3)

    def test_unpaid_order_cancelled_without_refund(self):
        order = DirectPlacementService().place_direct_order(
            self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="card"
        )

        cancelled = self.service.cancel_by_admin(self.admin, order.id)

        self.assertEqual(cancelled.payment_status, PaymentStatus.PENDING)
        self.assertEqual(cancelled.timeline[-1].description, "Order cancelled by admin")
        self.assertIsNone(self.wallet_repo.get_balance(self.auth.user_id))

    def test_requires_admin(self):
        order = DirectPlacementService().place_direct_order(
            self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="card"
        )
        with self.assertRaises(PermissionDeniedError):
            self.service.cancel_by_admin(self.auth, order.id)

    def test_second_cancel_does_not_refund_twice(self):
        """Terminal orders reject a repeat cancellation; the wallet moves once."""
        order = DirectPlacementService().place_direct_order(
            self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="wallet"
        )
        self.service.cancel_by_admin(self.admin, order.id)

        with self.assertRaises(InvalidStateError):
            self.service.cancel_by_admin(self.admin, order.id)
        self.assertEqual(self.wallet_repo.get_balance(self.auth.user_id), Decimal("1000.00"))

    def test_not_subject_to_cancellation_limit(self):
        orders = [
            DirectPlacementService().place_direct_order(
                self.auth, CARD_ITEMS, SHIPPING_ADDRESS, payment_method="card"
            )
            for _ in range(5)
        ]
        for order in orders:
            self.service.cancel_by_admin(self.admin, order.id)

        self.assertEqual(OrderORM.objects.filter(status="cancelled").count(), 5)
