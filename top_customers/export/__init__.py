"""Persistence of the top bucket and report exports."""

from top_customers.export.reports import (
    export_quantile_report,
    export_quantile_report_csv,
    export_quantile_report_json,
    export_quantile_report_markdown,
    quantile_summary_frame,
)
from top_customers.export.sink import (
    DEFAULT_BATCH_SIZE,
    ExportSummary,
    SqlDialect,
    default_table_name,
    ensure_export_table,
    export_top_customers,
    format_revenue,
    validate_table_name,
)

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "ExportSummary",
    "SqlDialect",
    "default_table_name",
    "ensure_export_table",
    "export_quantile_report",
    "export_quantile_report_csv",
    "export_quantile_report_json",
    "export_quantile_report_markdown",
    "export_top_customers",
    "format_revenue",
    "quantile_summary_frame",
    "validate_table_name",
]
