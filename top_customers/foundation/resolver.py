"""Latest-wins resolution of historical reference records.

Reference tables such as content prices and customer contact values keep
their history: a new row is inserted whenever the value changes. Analyses
only need the current value, i.e. the row with the most recent insertion
timestamp for each business key.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Hashable, Iterable, TypeVar

from top_customers.foundation.records import ContactRecord, PriceRecord

R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


def resolve_latest(
    records: Iterable[R],
    key: Callable[[R], K],
    recency: Callable[[R], Any],
) -> dict[K, R]:
    """Collapse records sharing a business key into the most recent one.

    A record replaces the stored record for its key when no record is stored
    yet or when its recency value is strictly greater. The result therefore
    holds, for every key, a record whose recency is maximal among the key's
    records. When recency values can tie, the first record processed for a
    key is kept; callers that need order independence should pass a recency
    value that includes a secondary key (see ``PriceRecord.recency``).

    Parameters
    ----------
    records:
        Records in any order. May be empty.
    key:
        Projection returning the business key of a record
    recency:
        Projection returning a comparable recency value of a record

    Returns
    -------
    dict
        Mapping from business key to the winning record

    Examples
    --------
    >>> from datetime import datetime
    >>> rows = [("a", datetime(2024, 1, 1), 1), ("a", datetime(2024, 2, 1), 2)]
    >>> resolve_latest(rows, key=lambda r: r[0], recency=lambda r: r[1])["a"][2]
    2
    """
    latest: dict[K, R] = {}
    latest_recency: dict[K, Any] = {}
    for record in records:
        record_key = key(record)
        record_recency = recency(record)
        if record_key not in latest or record_recency > latest_recency[record_key]:
            latest[record_key] = record
            latest_recency[record_key] = record_recency
    return latest


def build_price_map(prices: Iterable[PriceRecord]) -> dict[str, Decimal]:
    """Return the current unit price per content id.

    Equal ``inserted_at`` values are decided by the higher ``price_id`` and
    then by the higher price, so the result does not depend on input order.
    """
    latest = resolve_latest(
        prices, key=lambda p: p.content_id, recency=lambda p: p.recency
    )
    return {content_id: record.unit_price for content_id, record in latest.items()}


def build_contact_map(contacts: Iterable[ContactRecord]) -> dict[str, str]:
    """Return the current contact value per customer id."""
    latest = resolve_latest(
        contacts, key=lambda c: c.customer_id, recency=lambda c: c.recency
    )
    return {
        customer_id: record.contact_value for customer_id, record in latest.items()
    }
