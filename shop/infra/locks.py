"""
Transaction-scoped locks.

Row locks come from ``select_for_update()`` in the repositories; on PostgreSQL
an advisory lock additionally serializes work on a whole aggregate (e.g. a
wallet that has no row yet). Other backends serialize writers themselves.
"""
from contextlib import contextmanager
from uuid import UUID

from django.db import connection, transaction


@contextmanager
def advisory_lock(namespace: str, key: UUID):
    """
    Acquire an advisory lock held until the surrounding transaction ends.

    Usage:
        with transaction.atomic(), advisory_lock("wallet", customer_id):
            ...
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("advisory_lock must be used inside transaction.atomic()")

    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                [f"{namespace}:{key}"],
            )
    # Released automatically on commit or rollback.
    yield


def wallet_lock(customer_id: UUID):
    """Serialize wallet operations for one customer."""
    return advisory_lock("wallet", customer_id)


def cancellation_lock(customer_id: UUID):
    """Serialize customer-initiated cancellations for one customer."""
    return advisory_lock("cancellations", customer_id)
