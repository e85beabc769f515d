"""Customer ranking and quantile bucketing.

Customers are ranked by accumulated revenue (highest first) and the ranking
is cut into ``round(1 / quantile)`` contiguous buckets of equal size. Bucket 0
holds the highest-value customers and is the one exported downstream.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

MONEY_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class RankedCustomer:
    """A customer with its resolved contact value and revenue.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    contact_value:
        Current contact value (e.g. email), ``None`` when unknown
    revenue:
        Accumulated revenue over the analysis window
    """

    customer_id: str
    contact_value: str | None
    revenue: Decimal

    def __post_init__(self) -> None:
        """Validate ranked customer."""
        if self.revenue < 0:
            raise ValueError(
                f"Revenue cannot be negative: {self.revenue} (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class Bucket:
    """Summary of one contiguous slice of the ranking.

    Empty buckets report zero for every figure.
    """

    index: int
    min_revenue: Decimal
    max_revenue: Decimal
    member_count: int
    total_revenue: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        """Validate bucket."""
        if self.member_count < 0:
            raise ValueError(f"Member count cannot be negative: {self.member_count}")
        if self.min_revenue > self.max_revenue:
            raise ValueError(
                f"min_revenue ({self.min_revenue}) cannot exceed max_revenue ({self.max_revenue})"
            )

    @property
    def is_empty(self) -> bool:
        return self.member_count == 0

    @property
    def mean_revenue(self) -> Decimal:
        if self.member_count == 0:
            return Decimal("0")
        return (self.total_revenue / self.member_count).quantize(
            MONEY_PRECISION, rounding=ROUND_HALF_UP
        )


@dataclass(frozen=True)
class QuantileAnalysis:
    """Buckets over a ranked population.

    Attributes
    ----------
    quantile:
        Fraction of the population each bucket approximates
    population:
        Number of ranked customers
    bucket_size:
        Maximum number of members per bucket
    buckets:
        Bucket summaries, highest revenue first. Empty when there are no
        customers.
    top_bucket:
        Members of bucket 0, or ``None`` when there are no customers
    """

    quantile: float
    population: int
    bucket_size: int
    buckets: tuple[Bucket, ...]
    top_bucket: tuple[RankedCustomer, ...] | None

    @property
    def is_empty(self) -> bool:
        return self.top_bucket is None

    def percentile_range(self, index: int) -> tuple[float, float]:
        """Return the (start, end) percentage labels of bucket ``index``."""
        return (index * self.quantile * 100, (index + 1) * self.quantile * 100)


def rank_customers(
    revenue: Mapping[str, Decimal], contact_map: Mapping[str, str]
) -> list[RankedCustomer]:
    """Join revenue totals with contact values and sort by revenue descending.

    Customers without a contact value keep ``contact_value=None``. Equal
    revenues are ordered by customer id so the ranking is reproducible.
    """
    ranked = [
        RankedCustomer(
            customer_id=customer_id,
            contact_value=contact_map.get(customer_id),
            revenue=value,
        )
        for customer_id, value in revenue.items()
    ]
    ranked.sort(key=lambda c: c.customer_id)
    ranked.sort(key=lambda c: c.revenue, reverse=True)
    return ranked


def bucket_count(quantile: float) -> int:
    """Number of buckets for ``quantile``, rounding halves away from zero."""
    if not 0 < quantile <= 1:
        raise ValueError(f"Quantile must be in (0, 1]: {quantile}")
    return max(1, math.floor(1.0 / quantile + 0.5))


def compute_quantiles(
    ranked: Sequence[RankedCustomer], quantile: float
) -> QuantileAnalysis:
    """Partition a descending ranking into equal-sized contiguous buckets.

    With ``N`` customers and ``K = round(1 / quantile)`` buckets, every bucket
    holds ``S = ceil(N / K)`` customers except the trailing ones, which may
    be short or empty. Bucket ``i`` covers ranked positions
    ``[i * S, min((i + 1) * S, N))``.

    Parameters
    ----------
    ranked:
        Customers sorted by revenue descending (see :func:`rank_customers`)
    quantile:
        Target fraction in (0, 1], e.g. 0.025 for the top 2.5%

    Returns
    -------
    QuantileAnalysis
        Bucket summaries and the membership of bucket 0. With no customers,
        ``buckets`` is empty and ``top_bucket`` is ``None``.

    Examples
    --------
    >>> from decimal import Decimal
    >>> ranked = [RankedCustomer(str(i), None, Decimal(100 - 10 * i)) for i in range(10)]
    >>> analysis = compute_quantiles(ranked, 0.25)
    >>> [b.member_count for b in analysis.buckets]
    [3, 3, 3, 1]
    >>> [c.revenue for c in analysis.top_bucket]
    [Decimal('100'), Decimal('90'), Decimal('80')]
    """
    k = bucket_count(quantile)
    n = len(ranked)
    if n == 0:
        return QuantileAnalysis(
            quantile=quantile, population=0, bucket_size=0, buckets=(), top_bucket=None
        )

    size = -(-n // k)
    buckets: list[Bucket] = []
    for i in range(k):
        start = i * size
        if start >= n:
            buckets.append(
                Bucket(
                    index=i,
                    min_revenue=Decimal("0"),
                    max_revenue=Decimal("0"),
                    member_count=0,
                )
            )
            continue
        members = ranked[start : min(start + size, n)]
        buckets.append(
            Bucket(
                index=i,
                min_revenue=members[-1].revenue,
                max_revenue=members[0].revenue,
                member_count=len(members),
                total_revenue=sum((m.revenue for m in members), Decimal("0")),
            )
        )

    return QuantileAnalysis(
        quantile=quantile,
        population=n,
        bucket_size=size,
        buckets=tuple(buckets),
        top_bucket=tuple(ranked[: min(size, n)]),
    )


def log_quantile_summary(analysis: QuantileAnalysis) -> None:
    """Log one line per bucket followed by the top bucket size."""
    if analysis.is_empty:
        logger.warning("No quantile stats (no customers)")
        return

    logger.info("========== QUANTILE ANALYSIS ==========")
    for bucket in analysis.buckets:
        start_pct, end_pct = analysis.percentile_range(bucket.index)
        logger.info(
            f"Quantile {bucket.index} ({start_pct:.1f}% - {end_pct:.1f}%): "
            f"{bucket.member_count} customers, "
            f"min={bucket.min_revenue.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)} "
            f"max={bucket.max_revenue.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)} "
            f"mean={bucket.mean_revenue}"
        )
    logger.info("=======================================")
    logger.info(f"Top quantile extracted: {len(analysis.top_bucket)} customers")
