"""Revenue aggregation per customer.

Combines purchase events with the current content prices to produce one
accumulated revenue figure per customer. Events whose content has no price
are excluded from every total and tracked in a data-quality report, so that
gaps in the price reference set are visible without failing the run.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from top_customers.foundation.records import PricedEvent

logger = logging.getLogger(__name__)

PERCENTAGE_PRECISION = Decimal("0.01")

# Default number of processed events between two observer notifications
DEFAULT_PROGRESS_INTERVAL = 10_000

ProgressObserver = Callable[[int, int], None]


@dataclass(frozen=True)
class DataQualityReport:
    """Events that could not be priced during aggregation.

    Attributes
    ----------
    total_events:
        Number of events given to the aggregator
    missing_prices:
        Number of skipped events per unpriced content id
    """

    total_events: int
    missing_prices: Mapping[str, int]

    @property
    def unpriced_content_count(self) -> int:
        """Distinct content ids without a price."""
        return len(self.missing_prices)

    @property
    def skipped_events(self) -> int:
        """Events excluded from every customer total."""
        return sum(self.missing_prices.values())

    @property
    def skipped_pct(self) -> Decimal:
        """Percentage of input events skipped (0-100, two decimals)."""
        if self.total_events == 0:
            return Decimal("0")
        return (
            Decimal(self.skipped_events) / Decimal(self.total_events) * 100
        ).quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP)

    @property
    def has_gaps(self) -> bool:
        return self.skipped_events > 0


@dataclass(frozen=True)
class RevenueAggregation:
    """Result of :func:`aggregate_revenue`.

    Attributes
    ----------
    revenue:
        Read-only mapping of customer id to accumulated revenue. Customers
        whose events were all unpriced are absent.
    quality:
        Data-quality report for the pass
    """

    revenue: Mapping[str, Decimal]
    quality: DataQualityReport


def aggregate_revenue(
    events: Sequence[PricedEvent],
    price_map: Mapping[str, Decimal],
    observer: ProgressObserver | None = None,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
) -> RevenueAggregation:
    """Accumulate ``quantity * unit_price`` per customer.

    Parameters
    ----------
    events:
        Purchase events, already filtered to the analysis window
    price_map:
        Current unit price per content id (see ``build_price_map``)
    observer:
        Optional progress callback called with ``(processed, total)`` every
        ``progress_interval`` events and once after the last event
    progress_interval:
        Number of events between two observer calls

    Returns
    -------
    RevenueAggregation
        Revenue per customer and the data-quality report

    Examples
    --------
    >>> from datetime import datetime
    >>> from decimal import Decimal
    >>> ts = datetime(2024, 1, 1)
    >>> events = [
    ...     PricedEvent("100", "10", 2, ts),
    ...     PricedEvent("100", "99", 1, ts),
    ... ]
    >>> result = aggregate_revenue(events, {"10": Decimal("9.99")})
    >>> result.revenue["100"]
    Decimal('19.98')
    >>> result.quality.skipped_events
    1
    """
    if progress_interval <= 0:
        raise ValueError(f"progress_interval must be positive: {progress_interval}")

    total = len(events)
    revenue: dict[str, Decimal] = {}
    missing: Counter[str] = Counter()

    for processed, event in enumerate(events, start=1):
        unit_price = price_map.get(event.content_id)
        if unit_price is None:
            missing[event.content_id] += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    f"Missing price for content {event.content_id} "
                    f"(event_data_id={event.event_data_id}); skipping"
                )
        else:
            revenue[event.customer_id] = (
                revenue.get(event.customer_id, Decimal("0"))
                + unit_price * event.quantity
            )

        if observer is not None and processed % progress_interval == 0:
            observer(processed, total)

    if observer is not None and total % progress_interval != 0:
        observer(total, total)

    quality = DataQualityReport(
        total_events=total, missing_prices=MappingProxyType(dict(missing))
    )
    log_data_quality(quality)
    return RevenueAggregation(revenue=MappingProxyType(revenue), quality=quality)


def log_data_quality(report: DataQualityReport) -> None:
    """Log a warning when events were skipped, a confirmation otherwise."""
    if not report.has_gaps:
        logger.info("All events had corresponding prices")
        return

    logger.warning(
        f"Missing prices detected: {report.unpriced_content_count} unique content ids, "
        f"{report.skipped_events} events skipped ({report.skipped_pct}% of {report.total_events})"
    )
    if logger.isEnabledFor(logging.DEBUG):
        for content_id, count in sorted(report.missing_prices.items()):
            logger.debug(f"  Content {content_id}: {count} events skipped")


def sample_revenue(
    revenue: Mapping[str, Decimal], n: int = 10, seed: int | None = None
) -> list[tuple[str, Decimal]]:
    """Pick up to ``n`` distinct random entries for diagnostic display.

    The input mapping is not modified and the module level random state is
    not used.
    """
    if n < 0:
        raise ValueError(f"Sample size cannot be negative: {n}")
    if not revenue:
        return []
    rng = random.Random(seed)
    customer_ids = sorted(revenue)
    chosen = rng.sample(customer_ids, min(n, len(customer_ids)))
    return [(customer_id, revenue[customer_id]) for customer_id in chosen]
