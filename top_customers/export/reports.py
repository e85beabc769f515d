"""Export quantile analysis results to report files.

This module provides utilities for saving the per-bucket summary of a run,
together with its data-quality figures, for dashboards, spreadsheets and
audit trails.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from top_customers.analyses.quantiles import QuantileAnalysis
from top_customers.analyses.revenue import DataQualityReport

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "quantile_index",
    "start_pct",
    "end_pct",
    "nb_customers",
    "min_revenue",
    "max_revenue",
    "mean_revenue",
    "total_revenue",
]

REPORT_SUFFIXES = (".csv", ".json", ".md", ".markdown")


def _bucket_records(analysis: QuantileAnalysis) -> list[dict[str, Any]]:
    records = []
    for bucket in analysis.buckets:
        start_pct, end_pct = analysis.percentile_range(bucket.index)
        records.append(
            {
                "quantile_index": bucket.index,
                "start_pct": round(start_pct, 4),
                "end_pct": round(end_pct, 4),
                "nb_customers": bucket.member_count,
                "min_revenue": round(float(bucket.min_revenue), 2),
                "max_revenue": round(float(bucket.max_revenue), 2),
                "mean_revenue": float(bucket.mean_revenue),
                "total_revenue": round(float(bucket.total_revenue), 2),
            }
        )
    return records


def quantile_summary_frame(analysis: QuantileAnalysis) -> pd.DataFrame:
    """Return one row per bucket, highest revenue bucket first.

    Revenue columns are floats rounded to two decimals; an analysis without
    customers yields an empty frame with the summary columns.
    """
    return pd.DataFrame(_bucket_records(analysis), columns=SUMMARY_COLUMNS)


def _quality_dict(quality: DataQualityReport) -> dict[str, Any]:
    return {
        "total_events": quality.total_events,
        "unpriced_content_ids": quality.unpriced_content_count,
        "skipped_events": quality.skipped_events,
        "skipped_pct": float(quality.skipped_pct),
        "missing_prices": dict(sorted(quality.missing_prices.items())),
    }


def export_quantile_report_json(
    analysis: QuantileAnalysis,
    output_path: str | Path,
    quality: DataQualityReport | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export the quantile summary to JSON.

    Parameters
    ----------
    analysis:
        Result of ``compute_quantiles``
    output_path:
        Path where the JSON file will be saved
    quality:
        Optional data-quality report of the aggregation pass
    metadata:
        Optional metadata to include (e.g. sink table, since date)
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    report_data = {
        "metadata": metadata or {},
        "timestamp": datetime.now().isoformat(),
        "quantile": analysis.quantile,
        "population": analysis.population,
        "bucket_size": analysis.bucket_size,
        "top_bucket_size": 0 if analysis.is_empty else len(analysis.top_bucket),
        "buckets": _bucket_records(analysis),
    }
    if quality is not None:
        report_data["data_quality"] = _quality_dict(quality)

    with open(output_path, "w") as f:
        json.dump(report_data, f, indent=2)

    logger.info(f"Quantile report exported to {output_path}")


def export_quantile_report_csv(
    analysis: QuantileAnalysis,
    output_path: str | Path,
) -> None:
    """Export the per-bucket summary to CSV."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    quantile_summary_frame(analysis).to_csv(output_path, index=False)

    logger.info(f"Quantile report exported to {output_path}")


def export_quantile_report_markdown(
    analysis: QuantileAnalysis,
    output_path: str | Path,
    quality: DataQualityReport | None = None,
    title: str = "Top Customers Quantile Report",
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export a human-readable Markdown report."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    lines = []
    lines.append(f"# {title}\n")
    lines.append(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    if metadata:
        lines.append("## Metadata\n")
        for key, value in metadata.items():
            lines.append(f"- **{key}:** {value}")
        lines.append("")

    lines.append("## Summary\n")
    lines.append(f"- **Customers Ranked:** {analysis.population}")
    lines.append(f"- **Quantile:** {analysis.quantile * 100:.2f}%")
    lines.append(f"- **Buckets:** {len(analysis.buckets)}")
    top_size = 0 if analysis.is_empty else len(analysis.top_bucket)
    lines.append(f"- **Top Bucket Size:** {top_size}\n")

    if quality is not None:
        lines.append("## Data Quality\n")
        if quality.has_gaps:
            lines.append(
                f"- **Events Skipped (missing price):** {quality.skipped_events} "
                f"of {quality.total_events} ({quality.skipped_pct}%)"
            )
            lines.append(
                f"- **Unpriced Content Ids:** {quality.unpriced_content_count}\n"
            )
        else:
            lines.append("- All events had corresponding prices\n")

    if analysis.is_empty:
        lines.append("No customers to bucket.")
    else:
        lines.append("## Buckets\n")
        lines.append("| Bucket | Range | Customers | Min | Max | Mean |")
        lines.append("|--------|-------|-----------|-----|-----|------|")
        for row in quantile_summary_frame(analysis).itertuples(index=False):
            lines.append(
                f"| {row.quantile_index} | {row.start_pct:.1f}% - {row.end_pct:.1f}% "
                f"| {row.nb_customers} | {row.min_revenue:.2f} | {row.max_revenue:.2f} "
                f"| {row.mean_revenue:.2f} |"
            )

    with open(output_path, "w") as f:
        f.write("\n".join(lines))

    logger.info(f"Quantile report exported to {output_path}")


def export_quantile_report(
    analysis: QuantileAnalysis,
    output_path: str | Path,
    quality: DataQualityReport | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export using the format implied by the file suffix (csv, json, md)."""
    suffix = Path(output_path).suffix.lower()
    if suffix == ".csv":
        export_quantile_report_csv(analysis, output_path)
    elif suffix == ".json":
        export_quantile_report_json(analysis, output_path, quality, metadata)
    elif suffix in REPORT_SUFFIXES:
        export_quantile_report_markdown(
            analysis, output_path, quality, metadata=metadata
        )
    else:
        raise ValueError(f"Unsupported report format: {suffix or output_path}")
