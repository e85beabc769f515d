"""End-to-end pipeline: resolve → aggregate → rank/bucket → export.

:func:`compute_top_customers` is the pure, in-memory part of a run.
:func:`export_result` persists its top bucket. Loading is left to
:mod:`top_customers.loaders` so the compute stage only ever sees plain
records.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Sequence

import structlog

from top_customers.analyses.quantiles import (
    QuantileAnalysis,
    RankedCustomer,
    compute_quantiles,
    log_quantile_summary,
    rank_customers,
)
from top_customers.analyses.revenue import (
    DataQualityReport,
    ProgressObserver,
    aggregate_revenue,
    sample_revenue,
)
from top_customers.config import PipelineConfig
from top_customers.export.sink import (
    ExportSummary,
    SqlDialect,
    ensure_export_table,
    export_top_customers,
)
from top_customers.foundation.records import ContactRecord, PricedEvent, PriceRecord
from top_customers.foundation.resolver import build_contact_map, build_price_map

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Everything computed by one run, before export."""

    ranked: tuple[RankedCustomer, ...]
    analysis: QuantileAnalysis
    quality: DataQualityReport
    price_map_size: int
    contact_map_size: int

    @property
    def top_bucket(self) -> tuple[RankedCustomer, ...]:
        """Members to export; empty when there are no customers."""
        return self.analysis.top_bucket or ()


def _log_progress(processed: int, total: int) -> None:
    logger.debug("aggregation_progress", stage="COMPUTE", processed=processed, total=total)


def compute_top_customers(
    events: Sequence[PricedEvent],
    prices: Sequence[PriceRecord],
    contacts: Sequence[ContactRecord],
    config: PipelineConfig,
    observer: ProgressObserver | None = _log_progress,
) -> PipelineResult:
    """Run the in-memory stages of the pipeline.

    Args:
        events: Purchase events already filtered to the analysis window
        prices: Full content price history
        contacts: Full customer contact history
        config: Run configuration (``quantile`` and ``sample_size`` are used)
        observer: Progress callback forwarded to the aggregator

    Returns:
        PipelineResult with the ranking, quantile analysis and data-quality report
    """
    price_map = build_price_map(prices)
    logger.info("price_map_built", stage="COMPUTE", price_map_size=len(price_map))
    contact_map = build_contact_map(contacts)
    logger.info("contact_map_built", stage="COMPUTE", contact_map_size=len(contact_map))

    aggregation = aggregate_revenue(events, price_map, observer=observer)
    logger.info(
        "revenue_computed",
        stage="COMPUTE",
        customers_with_revenue=len(aggregation.revenue),
        skipped_events=aggregation.quality.skipped_events,
    )

    if config.sample_size:
        for customer_id, revenue in sample_revenue(
            aggregation.revenue, config.sample_size
        ):
            logger.info(
                "revenue_sample", customer_id=customer_id, revenue=f"{revenue:.2f}"
            )

    ranked = rank_customers(aggregation.revenue, contact_map)
    analysis = compute_quantiles(ranked, config.quantile)
    log_quantile_summary(analysis)
    logger.info(
        "quantiles_computed",
        stage="COMPUTE",
        buckets=len(analysis.buckets),
        top_quantile_size=len(analysis.top_bucket or ()),
    )

    return PipelineResult(
        ranked=tuple(ranked),
        analysis=analysis,
        quality=aggregation.quality,
        price_map_size=len(price_map),
        contact_map_size=len(contact_map),
    )


def export_result(
    result: PipelineResult,
    connection: Any,
    table_name: str,
    config: PipelineConfig,
    dialect: SqlDialect = SqlDialect.SQLITE,
) -> ExportSummary:
    """Create the sink table if needed and upsert the top bucket.

    Raises:
        ExportError: When a batch fails; earlier batches stay committed.
    """
    ensure_export_table(connection, table_name, dialect)
    log = logger.bind(stage="EXPORT", table=table_name)
    log.info("export_started", count=len(result.top_bucket))
    started = time.perf_counter()
    summary = export_top_customers(
        connection,
        table_name,
        result.top_bucket,
        batch_size=config.batch_size,
        dialect=dialect,
        observer=lambda written, total: log.debug(
            "export_progress", written=written, total=total
        ),
    )
    log.info(
        "export_finished",
        rows_written=summary.rows_written,
        batches=summary.batches,
        duration_s=round(time.perf_counter() - started, 3),
    )
    return summary
