"""
Tests for the outbox relay and retry helper.
"""
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from shop.infra.outbox import OutboxEvent, OutboxRepository
from shop.infra.relay import OutboxRelay
from shop.infra.retry import retry_with_backoff
from shop.services import DirectPlacementService
from shop.test.factories import SHIPPING_ADDRESS, create_customer

ITEMS = [{"name": "Kettle", "price": "25.00"}]


class OutboxRelayTest(TestCase):
    """Tests for OutboxRelay."""

    def setUp(self):
        self.auth = create_customer()
        self.order = DirectPlacementService().place_direct_order(self.auth, ITEMS, SHIPPING_ADDRESS)

    def test_events_written_with_state_change(self):
        """Wallet placement records debit, payment and placement events."""
        event_types = set(OutboxEvent.objects.values_list("event_type", flat=True))
        self.assertEqual(event_types, {"WalletDebited", "OrderPaid", "OrderPlaced"})

        debited = OutboxEvent.objects.get(event_type="WalletDebited")
        self.assertEqual(debited.aggregate_type, "Wallet")
        self.assertEqual(debited.event_data["order_id"], str(self.order.id))
        self.assertEqual(debited.event_data["new_balance"], "975.00")

    def test_relay_marks_events_processed(self):
        published = []
        relay = OutboxRelay(publisher=published.append)

        self.assertEqual(relay.process_outbox_events(), 3)
        self.assertEqual(len(published), 3)
        self.assertFalse(OutboxEvent.objects.filter(processed=False).exists())
        self.assertEqual(relay.process_outbox_events(), 0)

    def test_failed_publish_increments_retry(self):
        """A publisher failure leaves the event pending with a higher retry count."""
        publisher = mock.Mock(side_effect=RuntimeError("broker down"))
        relay = OutboxRelay(publisher=publisher, publish_attempts=1)

        self.assertEqual(relay.process_outbox_events(), 0)
        self.assertEqual(OutboxEvent.objects.filter(processed=False).count(), 3)
        self.assertEqual(set(OutboxEvent.objects.values_list("retry_count", flat=True)), {1})

    def test_exhausted_events_skipped(self):
        OutboxEvent.objects.update(retry_count=5)
        relay = OutboxRelay(publisher=mock.Mock(), max_retries=5)
        self.assertEqual(relay.process_outbox_events(), 0)

    def test_get_unprocessed_events_oldest_first(self):
        events = OutboxRepository().get_unprocessed_events()
        created = [event.created_at for event in events]
        self.assertEqual(created, sorted(created))

    def test_process_outbox_command(self):
        out = StringIO()
        call_command("process_outbox", "--limit", "10", stdout=out)

        self.assertIn("Processed 3 events", out.getvalue())
        self.assertFalse(OutboxEvent.objects.filter(processed=False).exists())


class RetryWithBackoffTest(SimpleTestCase):
    """Tests for retry_with_backoff."""

    def test_retries_then_succeeds(self):
        delays = []
        calls = mock.Mock(side_effect=[ValueError("first"), ValueError("second"), "ok"])

        @retry_with_backoff(max_retries=3, initial_delay=1.0, jitter=False, sleep=delays.append)
        def flaky():
            return calls()

        self.assertEqual(flaky(), "ok")
        self.assertEqual(delays, [1.0, 2.0])

    def test_gives_up_after_max_retries(self):
        @retry_with_backoff(max_retries=2, initial_delay=0.1, sleep=lambda _: None)
        def broken():
            raise ValueError("nope")

        with self.assertRaises(ValueError):
            broken()

    def test_delay_capped(self):
        delays = []
        calls = mock.Mock(side_effect=[KeyError(), KeyError(), KeyError(), "ok"])

        @retry_with_backoff(max_retries=3, initial_delay=4.0, max_delay=5.0, jitter=False, sleep=delays.append)
        def flaky():
            return calls()

        flaky()
        self.assertEqual(delays, [4.0, 5.0, 5.0])

    def test_unlisted_exceptions_propagate(self):
        delays = []

        @retry_with_backoff(exceptions=(ValueError,), sleep=delays.append)
        def broken():
            raise TypeError("wrong")

        with self.assertRaises(TypeError):
            broken()
        self.assertEqual(delays, [])
