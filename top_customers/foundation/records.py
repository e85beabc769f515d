"""Input record types consumed by the top customers pipeline.

The loaders produce three flat record streams:

- purchase events (who bought which content, and how many),
- content price history (several prices may exist per content),
- customer contact history (several contact values may exist per customer).

Identifiers are opaque strings. Money is carried as :class:`~decimal.Decimal`
so that accumulating hundreds of thousands of line totals does not compound
floating point error.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

# Sorts below any real source row id so that records carrying an id win ties
NO_ROW_ID = -1


@dataclass(frozen=True)
class PricedEvent:
    """A single purchase event.

    Attributes
    ----------
    customer_id:
        Customer who made the purchase
    content_id:
        Key into the content price reference set
    quantity:
        Number of units purchased (non-negative)
    event_ts:
        When the event happened. Only used by the upstream window filter.
    event_data_id:
        Optional source row id, used for diagnostics only
    """

    customer_id: str
    content_id: str
    quantity: int
    event_ts: datetime
    event_data_id: int | None = None

    def __post_init__(self) -> None:
        """Validate event."""
        if self.quantity < 0:
            raise ValueError(
                f"Quantity cannot be negative: {self.quantity} (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class PriceRecord:
    """A historical unit price for a piece of content.

    Attributes
    ----------
    content_id:
        Content the price applies to
    unit_price:
        Price of one unit (non-negative)
    inserted_at:
        When the price row was recorded; the latest one is current
    price_id:
        Optional source row id, breaks ties on equal ``inserted_at``
    currency:
        Currency code as recorded upstream. Carried, never converted.
    """

    content_id: str
    unit_price: Decimal
    inserted_at: datetime
    price_id: int | None = None
    currency: str | None = None

    def __post_init__(self) -> None:
        """Validate price record."""
        if self.unit_price < 0:
            raise ValueError(
                f"Unit price cannot be negative: {self.unit_price} (content_id={self.content_id})"
            )

    @property
    def recency(self) -> tuple[datetime, int, Decimal]:
        """Ordering key used by latest-wins resolution."""
        row_id = NO_ROW_ID if self.price_id is None else self.price_id
        return (self.inserted_at, row_id, self.unit_price)


@dataclass(frozen=True)
class ContactRecord:
    """A historical contact value (e.g. an email address) for a customer."""

    customer_id: str
    contact_value: str
    inserted_at: datetime
    contact_id: int | None = None

    @property
    def recency(self) -> tuple[datetime, int, str]:
        """Ordering key used by latest-wins resolution."""
        row_id = NO_ROW_ID if self.contact_id is None else self.contact_id
        return (self.inserted_at, row_id, self.contact_value)
