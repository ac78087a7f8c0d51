"""
Relay for publishing outbox events.
"""
from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction

from shop.infra.outbox import OutboxEvent, OutboxRepository
from shop.infra.retry import retry_with_backoff

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("shop.events")


def log_publisher(event: OutboxEvent) -> None:
    """Default publisher: emit the event on the ``shop.events`` logger."""
    event_logger.info(
        event.event_type,
        extra={
            "event_id": str(event.id),
            "aggregate_type": event.aggregate_type,
            "aggregate_id": str(event.aggregate_id),
            "event_data": event.event_data,
        },
    )


class OutboxRelay:
    """Publishes unprocessed outbox events and marks them processed."""

    def __init__(
        self,
        outbox_repo: OutboxRepository | None = None,
        publisher: Callable[[OutboxEvent], None] | None = None,
        max_retries: int = 5,
        publish_attempts: int = 3,
        backoff_delay: float = 0.2,
    ):
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.max_retries = max_retries
        self._publish = retry_with_backoff(
            max_retries=publish_attempts - 1,
            initial_delay=backoff_delay,
            max_delay=5.0,
        )(publisher or log_publisher)

    def process_outbox_events(self, limit: int = 100) -> int:
        """Process unprocessed outbox events; returns the number published."""
        events = self.outbox_repo.get_unprocessed_events(limit=limit, max_retries=self.max_retries)
        processed_count = 0

        for event in events:
            try:
                with transaction.atomic():
                    self._publish(event)
                    self.outbox_repo.mark_processed(event.id)
                processed_count += 1
            except Exception as e:
                # Leave the event pending; it is retried on the next run.
                self.outbox_repo.increment_retry(event.id)
                logger.error(
                    "outbox_publish_failed",
                    extra={
                        "event_id": str(event.id),
                        "event_type": event.event_type,
                        "retry_count": event.retry_count + 1,
                        "error": str(e),
                    },
                    exc_info=True,
                )

        return processed_count
