"""Revenue aggregation and quantile analysis of the customer base."""

from .quantiles import (
    Bucket,
    QuantileAnalysis,
    RankedCustomer,
    bucket_count,
    compute_quantiles,
    log_quantile_summary,
    rank_customers,
)
from .revenue import (
    DataQualityReport,
    RevenueAggregation,
    aggregate_revenue,
    log_data_quality,
    sample_revenue,
)

__all__ = [
    "Bucket",
    "DataQualityReport",
    "QuantileAnalysis",
    "RankedCustomer",
    "RevenueAggregation",
    "aggregate_revenue",
    "bucket_count",
    "compute_quantiles",
    "log_data_quality",
    "log_quantile_summary",
    "rank_customers",
    "sample_revenue",
]
