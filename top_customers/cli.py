"""Command line entry point for the top customers export."""

from __future__ import annotations

import argparse
import sqlite3
import time
from contextlib import closing
from datetime import date
from pathlib import Path

import structlog
from pydantic import ValidationError

from top_customers.config import PipelineConfig
from top_customers.errors import LoadError, TopCustomersError
from top_customers.export.reports import REPORT_SUFFIXES, export_quantile_report
from top_customers.export.sink import SqlDialect
from top_customers.loaders import (
    load_content_prices,
    load_customer_contacts,
    load_events,
    load_json_records,
)
from top_customers.observability import configure_logging
from top_customers.pipeline import compute_top_customers, export_result

logger = structlog.get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Compute revenue per customer, split customers into revenue quantiles "
            "and upsert the top quantile into a date-stamped table."
        )
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--source-db",
        type=Path,
        help="SQLite database with CustomerEventData, ContentPrice and CustomerData tables.",
    )
    source.add_argument(
        "--input",
        type=Path,
        help="JSON file with 'events', 'prices' and 'contacts' lists.",
    )
    parser.add_argument(
        "--sink-db",
        type=Path,
        help="SQLite database receiving the top quantile (defaults to --source-db).",
    )
    parser.add_argument(
        "--quantile",
        type=float,
        help="Quantile fraction (default: 0.025 = top 2.5%%)",
    )
    parser.add_argument(
        "--since",
        type=date.fromisoformat,
        help="Event date lower bound, YYYY-MM-DD (default: 2020-04-01)",
    )
    parser.add_argument(
        "--batch-size", type=int, help="Rows per export batch (default: 500)"
    )
    parser.add_argument(
        "--table", help="Sink table name (default: top_customers_<YYYYMMDD>)"
    )
    parser.add_argument(
        "--sample-size",
        type=int,
        help="Random revenue samples to log (default: 10, 0 disables)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Write the quantile summary to this path (.csv, .json or .md).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report without writing to the sink.",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default="json",
        help="Structured log rendering (default: json)",
    )
    return parser


def _load_from_sqlite(path: Path, config: PipelineConfig):
    if not path.exists():
        raise LoadError(f"Source database not found: {path}")
    with closing(sqlite3.connect(path)) as conn:
        events = load_events(conn, config.since, config.event_type_id)
        prices = load_content_prices(conn)
        contacts = load_customer_contacts(conn, config.contact_channel_type_id)
    return events, prices, contacts


def main(argv: list[str] | None = None) -> int:
    """Run the full load → compute → export pipeline.

    Returns:
        0 on success, 1 on a load or export failure, 2 on invalid configuration
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.input and not args.sink_db and not args.dry_run:
        parser.error("--sink-db is required with --input unless --dry-run is given")
    if args.report and args.report.suffix.lower() not in REPORT_SUFFIXES:
        parser.error(f"--report must end with one of: {', '.join(REPORT_SUFFIXES)}")

    try:
        config = PipelineConfig.from_env(
            quantile=args.quantile,
            since=args.since,
            batch_size=args.batch_size,
            table_name=args.table,
            sample_size=args.sample_size,
            verbose=True if args.verbose else None,
        )
    except ValidationError as exc:
        configure_logging(verbose=args.verbose, json_format=args.log_format == "json")
        logger.error("invalid_configuration", error=str(exc))
        return 2

    configure_logging(verbose=config.verbose, json_format=args.log_format == "json")
    started = time.perf_counter()
    logger.info(
        "process_started",
        stage="START",
        quantile=config.quantile,
        since=config.since.isoformat(),
    )

    try:
        logger.info("loading_inputs", stage="LOAD")
        if args.input:
            events, prices, contacts = load_json_records(
                args.input, config.since, config.event_type_id
            )
        else:
            events, prices, contacts = _load_from_sqlite(args.source_db, config)
        logger.info(
            "inputs_loaded",
            stage="LOAD",
            loaded_events=len(events),
            loaded_prices=len(prices),
            loaded_contacts=len(contacts),
        )

        result = compute_top_customers(events, prices, contacts, config)
        table_name = config.resolved_table_name()

        if args.report:
            export_quantile_report(
                result.analysis,
                args.report,
                quality=result.quality,
                metadata={"table": table_name, "since": config.since.isoformat()},
            )

        if args.dry_run:
            logger.info("dry_run_skip_export", stage="EXPORT", table=table_name)
        else:
            sink_path = args.sink_db or args.source_db
            with closing(sqlite3.connect(sink_path)) as conn:
                export_result(result, conn, table_name, config, SqlDialect.SQLITE)
    except TopCustomersError as exc:
        logger.error("process_failed", error=str(exc))
        return 1
    except sqlite3.Error as exc:
        logger.error("sink_unavailable", error=str(exc))
        return 1

    logger.info(
        "process_finished", duration_s=round(time.perf_counter() - started, 3)
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
