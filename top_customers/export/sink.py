"""Batch upsert of the top bucket into a reporting table.

Each member of the top bucket becomes one row keyed by customer id. Rows are
written in fixed-size batches, one multi-row ``INSERT`` per batch inside its
own transaction. Existing rows with the same customer id are overwritten, so
re-running the pipeline against the same table never produces duplicates and
always leaves the latest computation in place.

The exporter works with any DB-API 2.0 connection; :class:`SqlDialect`
selects the placeholder style and the upsert clause of the target database.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Sequence

from top_customers.analyses.quantiles import RankedCustomer
from top_customers.errors import ExportError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
DEFAULT_TABLE_PREFIX = "top_customers"
REVENUE_PRECISION = Decimal("0.01")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

ExportObserver = Callable[[int, int], None]


class SqlDialect(str, Enum):
    """SQL dialects supported by the loaders and the exporter."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"

    @property
    def placeholder(self) -> str:
        if self is SqlDialect.SQLITE:
            return "?"
        return "%s"

    def upsert_clause(self) -> str:
        if self is SqlDialect.MYSQL:
            return (
                "ON DUPLICATE KEY UPDATE "
                "contact_value=VALUES(contact_value), revenue=VALUES(revenue)"
            )
        return (
            "ON CONFLICT (customer_id) DO UPDATE SET "
            "contact_value=excluded.contact_value, revenue=excluded.revenue"
        )

    def create_table_sql(self, table_name: str) -> str:
        suffix = " ENGINE=InnoDB" if self is SqlDialect.MYSQL else ""
        return (
            f"CREATE TABLE IF NOT EXISTS {table_name} ("
            "customer_id VARCHAR(64) NOT NULL PRIMARY KEY, "
            "contact_value VARCHAR(255), "
            "revenue DECIMAL(18,2) NOT NULL"
            f"){suffix}"
        )


@dataclass(frozen=True)
class ExportSummary:
    """Outcome of :func:`export_top_customers`."""

    table_name: str
    rows_written: int
    batches: int


def validate_table_name(table_name: str) -> str:
    """Return ``table_name`` if it is a plain SQL identifier.

    Table names are interpolated into SQL text, so anything other than
    letters, digits and underscores is rejected.
    """
    if not _IDENTIFIER.match(table_name or ""):
        raise ValueError(f"Invalid sink table name: {table_name!r}")
    return table_name


def default_table_name(
    run_date: date, prefix: str = DEFAULT_TABLE_PREFIX
) -> str:
    """Date-stamped table name, e.g. ``top_customers_20240131``."""
    return validate_table_name(f"{prefix}_{run_date:%Y%m%d}")


def format_revenue(revenue: Decimal) -> str:
    """Serialise revenue with exactly two decimals."""
    return str(Decimal(revenue).quantize(REVENUE_PRECISION, rounding=ROUND_HALF_UP))


def ensure_export_table(
    connection: Any, table_name: str, dialect: SqlDialect = SqlDialect.SQLITE
) -> None:
    """Create the sink table if it does not exist yet.

    An existing table is left untouched, whatever its content.

    Raises
    ------
    ExportError
        When the table cannot be created
    """
    validate_table_name(table_name)
    try:
        cursor = connection.cursor()
        try:
            cursor.execute(dialect.create_table_sql(table_name))
        finally:
            cursor.close()
        connection.commit()
    except Exception as exc:
        raise ExportError(
            f"Cannot create sink table {table_name}: {exc}",
            table_name=table_name,
            batch_index=None,
            rows_committed=0,
        ) from exc


def build_upsert_statement(
    table_name: str, row_count: int, dialect: SqlDialect = SqlDialect.SQLITE
) -> str:
    """Multi-row upsert statement for ``row_count`` rows."""
    if row_count <= 0:
        raise ValueError(f"Row count must be positive: {row_count}")
    ph = dialect.placeholder
    values = ", ".join([f"({ph}, {ph}, {ph})"] * row_count)
    return (
        f"INSERT INTO {table_name} (customer_id, contact_value, revenue) "
        f"VALUES {values} {dialect.upsert_clause()}"
    )


def export_top_customers(
    connection: Any,
    table_name: str,
    members: Sequence[RankedCustomer],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    dialect: SqlDialect = SqlDialect.SQLITE,
    observer: ExportObserver | None = None,
) -> ExportSummary:
    """Upsert ``members`` into ``table_name`` in transactional batches.

    Parameters
    ----------
    connection:
        Open DB-API 2.0 connection to the sink database. The table must
        exist (see :func:`ensure_export_table`).
    table_name:
        Sink table, a plain SQL identifier
    members:
        Customers to persist, typically the top bucket
    batch_size:
        Maximum rows per ``INSERT`` statement and transaction
    dialect:
        SQL dialect of ``connection``
    observer:
        Optional progress callback called with ``(rows_written, total)``
        after each committed batch

    Returns
    -------
    ExportSummary
        Rows written and number of committed batches

    Raises
    ------
    ExportError
        When a batch fails. The failed batch is rolled back; earlier batches
        stay committed.
    """
    validate_table_name(table_name)
    if batch_size <= 0:
        raise ValueError(f"Batch size must be positive: {batch_size}")

    total = len(members)
    if total == 0:
        logger.info("No top customers to export")
        return ExportSummary(table_name=table_name, rows_written=0, batches=0)

    logger.info(f"Exporting {total} top customers to {table_name} (batch size {batch_size})")

    written = 0
    batches = 0
    for start in range(0, total, batch_size):
        batch = members[start : start + batch_size]
        params: list[object] = []
        for member in batch:
            params.extend(
                [member.customer_id, member.contact_value, format_revenue(member.revenue)]
            )
        statement = build_upsert_statement(table_name, len(batch), dialect)

        try:
            cursor = connection.cursor()
            try:
                cursor.execute(statement, params)
            finally:
                cursor.close()
            connection.commit()
        except Exception as exc:
            outcome = "was rolled back"
            try:
                connection.rollback()
            except Exception as rollback_exc:
                logger.error(f"Rollback of batch {batches} failed: {rollback_exc}")
                outcome = f"could not be rolled back ({rollback_exc})"
            raise ExportError(
                f"Export batch {batches} to {table_name} failed and {outcome}: {exc}",
                table_name=table_name,
                batch_index=batches,
                rows_committed=written,
            ) from exc

        written += len(batch)
        batches += 1
        logger.debug(f"Committed batch {batches - 1} ({len(batch)} rows)")
        if observer is not None:
            observer(written, total)

    return ExportSummary(table_name=table_name, rows_written=written, batches=batches)
