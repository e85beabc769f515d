from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from top_customers.foundation.records import ContactRecord, PricedEvent, PriceRecord


@dataclass(frozen=True)
class SyntheticConfig:
    """Configuration for the synthetic dataset generator.

    Attributes
    ----------
    mean_unit_price: Average content price.
    price_variability: Coefficient in (0, 1] controlling price variance.
    price_revisions: Maximum number of historical price rows per content.
    unpriced_share: Fraction of the catalog left without any price row.
    events_per_customer: Average purchase events per customer.
    quantity_mean: Average quantity per event.
    contact_revisions: Maximum number of historical contact rows per customer.
    missing_contact_share: Fraction of customers without any contact row.
    seed: Optional RNG seed for reproducibility.
    """

    mean_unit_price: float = 12.0
    price_variability: float = 0.5
    price_revisions: int = 3
    unpriced_share: float = 0.0
    events_per_customer: float = 4.0
    quantity_mean: float = 1.5
    contact_revisions: int = 2
    missing_contact_share: float = 0.1
    seed: Optional[int] = None


@dataclass(frozen=True)
class SyntheticDataset:
    events: List[PricedEvent]
    prices: List[PriceRecord]
    contacts: List[ContactRecord]


def _random_ts(rng: random.Random, start: date, end: date) -> datetime:
    total_seconds = ((end - start).days + 1) * 86400
    offset = rng.randrange(total_seconds)
    return datetime(start.year, start.month, start.day) + timedelta(seconds=offset)


def _sample_price(rng: random.Random, mean: float, variability: float) -> Decimal:
    variability = min(max(variability, 0.01), 1.0)
    # Log-normal-ish by exponentiating a normal draw for positivity
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return Decimal(str(round(max(price, 0.01), 2)))


def _sample_quantity(rng: random.Random, mean_q: float) -> int:
    # Discretized log-normal; rounds down to zero now and then
    q = rng.lognormvariate(mu=math.log(max(mean_q, 0.1)), sigma=0.6)
    return max(0, int(round(q)))


def generate_price_history(
    catalog: Sequence[str],
    start: date,
    end: date,
    *,
    config: Optional[SyntheticConfig] = None,
) -> List[PriceRecord]:
    """Generate 1..``price_revisions`` price rows per priced content id."""
    if start > end:
        raise ValueError("start date must be <= end date")
    config = config or SyntheticConfig()
    rng = random.Random(config.seed)

    priced = [c for c in catalog if rng.random() >= config.unpriced_share]
    prices: List[PriceRecord] = []
    price_id = 1
    for content_id in priced:
        for _ in range(1 + rng.randrange(max(1, config.price_revisions))):
            prices.append(
                PriceRecord(
                    content_id=content_id,
                    unit_price=_sample_price(
                        rng, config.mean_unit_price, config.price_variability
                    ),
                    inserted_at=_random_ts(rng, start, end),
                    price_id=price_id,
                    currency="EUR",
                )
            )
            price_id += 1
    rng.shuffle(prices)
    return prices


def generate_contacts(
    customer_ids: Sequence[str],
    start: date,
    end: date,
    *,
    config: Optional[SyntheticConfig] = None,
) -> List[ContactRecord]:
    """Generate email history rows; some customers get none."""
    if start > end:
        raise ValueError("start date must be <= end date")
    config = config or SyntheticConfig()
    rng = random.Random(None if config.seed is None else config.seed + 1)

    contacts: List[ContactRecord] = []
    contact_id = 1
    for customer_id in customer_ids:
        if rng.random() < config.missing_contact_share:
            continue
        for revision in range(1 + rng.randrange(max(1, config.contact_revisions))):
            contacts.append(
                ContactRecord(
                    customer_id=customer_id,
                    contact_value=f"customer{customer_id}.v{revision}@example.com",
                    inserted_at=_random_ts(rng, start, end),
                    contact_id=contact_id,
                )
            )
            contact_id += 1
    rng.shuffle(contacts)
    return contacts


def generate_events(
    customer_ids: Sequence[str],
    catalog: Sequence[str],
    start: date,
    end: date,
    *,
    config: Optional[SyntheticConfig] = None,
) -> List[PricedEvent]:
    """Generate purchase events with a Poisson-like count per customer."""
    if start > end:
        raise ValueError("start date must be <= end date")
    if not catalog:
        raise ValueError("catalog cannot be empty")
    config = config or SyntheticConfig()
    rng = random.Random(None if config.seed is None else config.seed + 2)

    events: List[PricedEvent] = []
    event_data_id = 1
    for customer_id in customer_ids:
        # Knuth's algorithm, fine for small lambdas
        limit = math.exp(-max(0.0, config.events_per_customer))
        count = 0
        p = 1.0
        while p > limit:
            count += 1
            p *= rng.random()
        for _ in range(max(0, count - 1)):
            events.append(
                PricedEvent(
                    customer_id=customer_id,
                    content_id=rng.choice(list(catalog)),
                    quantity=_sample_quantity(rng, config.quantity_mean),
                    event_ts=_random_ts(rng, start, end),
                    event_data_id=event_data_id,
                )
            )
            event_data_id += 1

    events.sort(key=lambda e: (e.event_ts, e.event_data_id))
    return events


def generate_dataset(
    n_customers: int,
    n_contents: int,
    start: date,
    end: date,
    *,
    config: Optional[SyntheticConfig] = None,
) -> SyntheticDataset:
    """Generate matching events, price history and contact history."""
    if n_customers < 0 or n_contents <= 0:
        raise ValueError("n_customers must be >= 0 and n_contents > 0")
    customer_ids = [str(1000 + i) for i in range(n_customers)]
    catalog = [str(i + 1) for i in range(n_contents)]
    return SyntheticDataset(
        events=generate_events(customer_ids, catalog, start, end, config=config),
        prices=generate_price_history(catalog, start, end, config=config),
        contacts=generate_contacts(customer_ids, start, end, config=config),
    )


def dataset_to_payload(dataset: SyntheticDataset) -> dict:
    """Serialize a dataset to the JSON document read by ``load_json_records``."""
    return {
        "events": [
            {
                "event_data_id": e.event_data_id,
                "customer_id": e.customer_id,
                "content_id": e.content_id,
                "quantity": e.quantity,
                "event_ts": e.event_ts.isoformat(),
            }
            for e in dataset.events
        ],
        "prices": [
            {
                "price_id": p.price_id,
                "content_id": p.content_id,
                "unit_price": str(p.unit_price),
                "currency": p.currency,
                "inserted_at": p.inserted_at.isoformat(),
            }
            for p in dataset.prices
        ],
        "contacts": [
            {
                "contact_id": c.contact_id,
                "customer_id": c.customer_id,
                "contact_value": c.contact_value,
                "inserted_at": c.inserted_at.isoformat(),
            }
            for c in dataset.contacts
        ],
    }
