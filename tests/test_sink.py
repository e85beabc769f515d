"""Tests for the batch upsert exporter."""

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from top_customers.analyses.quantiles import RankedCustomer
from top_customers.errors import ExportError
from top_customers.export.sink import (
    SqlDialect,
    build_upsert_statement,
    default_table_name,
    ensure_export_table,
    export_top_customers,
    format_revenue,
    validate_table_name,
)

TABLE = "top_customers_20240131"


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


def _members(n, revenue="10.00", contact="c{}@example.com"):
    return [
        RankedCustomer(str(i), contact.format(i), Decimal(revenue) + i) for i in range(n)
    ]


def _rows(conn, table=TABLE):
    return conn.execute(
        f"SELECT customer_id, contact_value, revenue FROM {table} ORDER BY customer_id"
    ).fetchall()


class TestTableNames:
    """Test sink table naming."""

    def test_default_table_name_is_date_stamped(self):
        assert default_table_name(date(2024, 1, 31)) == "top_customers_20240131"
        assert default_table_name(date(2024, 1, 31), "test_export") == "test_export_20240131"

    @pytest.mark.parametrize(
        "name", ["", "1abc", "top-customers", "t; DROP TABLE x", "a b"]
    )
    def test_invalid_table_names_rejected(self, name):
        with pytest.raises(ValueError, match="Invalid sink table name"):
            validate_table_name(name)


class TestFormatting:
    """Test SQL text and value serialisation."""

    def test_revenue_has_two_decimals(self):
        assert format_revenue(Decimal("24.98")) == "24.98"
        assert format_revenue(Decimal("100")) == "100.00"
        assert format_revenue(Decimal("1.005")) == "1.01"
        assert format_revenue(Decimal("0.123456789")) == "0.12"

    def test_sqlite_statement(self):
        sql = build_upsert_statement("t", 2, SqlDialect.SQLITE)
        assert "VALUES (?, ?, ?), (?, ?, ?)" in sql
        assert "ON CONFLICT (customer_id) DO UPDATE SET" in sql

    def test_mysql_statement(self):
        sql = build_upsert_statement("t", 1, SqlDialect.MYSQL)
        assert "VALUES (%s, %s, %s)" in sql
        assert "ON DUPLICATE KEY UPDATE contact_value=VALUES(contact_value)" in sql

    def test_postgresql_statement(self):
        sql = build_upsert_statement("t", 1, SqlDialect.POSTGRESQL)
        assert "VALUES (%s, %s, %s)" in sql
        assert "excluded.revenue" in sql

    def test_mysql_table_uses_innodb(self):
        assert SqlDialect.MYSQL.create_table_sql("t").endswith("ENGINE=InnoDB")


class TestEnsureExportTable:
    """Test sink table creation."""

    def test_creates_table(self, conn):
        ensure_export_table(conn, TABLE)
        assert _rows(conn) == []

    def test_existing_table_is_kept(self, conn):
        ensure_export_table(conn, TABLE)
        export_top_customers(conn, TABLE, _members(2))
        ensure_export_table(conn, TABLE)
        assert len(_rows(conn)) == 2


class TestExportTopCustomers:
    """Test export_top_customers."""

    def test_writes_one_row_per_member(self, conn):
        ensure_export_table(conn, TABLE)
        summary = export_top_customers(conn, TABLE, _members(3))

        assert summary.rows_written == 3
        assert summary.batches == 1
        rows = _rows(conn)
        assert [r[0] for r in rows] == ["0", "1", "2"]
        assert rows[0][1] == "c0@example.com"
        assert rows[2][2] == pytest.approx(12.00)

    def test_revenue_rounded_to_two_decimals(self, conn):
        ensure_export_table(conn, TABLE)
        export_top_customers(
            conn, TABLE, [RankedCustomer("1", None, Decimal("24.9849999"))]
        )
        assert _rows(conn)[0][2] == pytest.approx(24.98)

    def test_missing_contact_written_as_null(self, conn):
        ensure_export_table(conn, TABLE)
        export_top_customers(conn, TABLE, [RankedCustomer("1", None, Decimal("5"))])
        assert _rows(conn)[0][1] is None

    def test_batches_of_fixed_size(self, conn):
        ensure_export_table(conn, TABLE)
        progress = []
        summary = export_top_customers(
            conn,
            TABLE,
            _members(1203),
            batch_size=500,
            observer=lambda written, total: progress.append(written),
        )

        assert summary.batches == 3
        assert progress == [500, 1000, 1203]
        assert len(_rows(conn)) == 1203

    def test_export_twice_is_idempotent(self, conn):
        """Same membership twice leaves one row per customer."""
        ensure_export_table(conn, TABLE)
        members = _members(10)
        export_top_customers(conn, TABLE, members, batch_size=4)
        export_top_customers(conn, TABLE, members, batch_size=4)

        assert len(_rows(conn)) == 10

    def test_rerun_overwrites_with_latest_values(self, conn):
        ensure_export_table(conn, TABLE)
        export_top_customers(conn, TABLE, _members(3, revenue="10", contact="old{}@x.io"))
        export_top_customers(
            conn,
            TABLE,
            _members(4, revenue="99", contact="new{}@x.io"),
        )

        rows = _rows(conn)
        assert len(rows) == 4
        assert rows[0][1] == "new0@x.io"
        assert rows[0][2] == pytest.approx(99.00)

    def test_empty_membership_is_noop(self, conn):
        summary = export_top_customers(conn, TABLE, [])
        assert (summary.rows_written, summary.batches) == (0, 0)
        tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        assert tables == []

    def test_invalid_batch_size_raises_error(self, conn):
        with pytest.raises(ValueError, match="Batch size must be positive"):
            export_top_customers(conn, TABLE, _members(1), batch_size=0)

    def test_failed_batch_rolled_back_and_earlier_batches_kept(self, conn):
        """A constraint violation aborts the run without partial batches."""
        conn.execute(
            f"CREATE TABLE {TABLE} ("
            "customer_id VARCHAR(64) NOT NULL PRIMARY KEY, "
            "contact_value VARCHAR(255) CHECK (contact_value IS NOT NULL), "
            "revenue DECIMAL(18,2) NOT NULL)"
        )
        conn.commit()
        members = _members(5)
        members[3] = RankedCustomer("3", None, Decimal("1"))

        with pytest.raises(ExportError) as excinfo:
            export_top_customers(conn, TABLE, members, batch_size=2)

        assert excinfo.value.batch_index == 1
        assert excinfo.value.rows_committed == 2
        assert [r[0] for r in _rows(conn)] == ["0", "1"]


class _LostCursor:
    def execute(self, sql, params=None):
        raise sqlite3.OperationalError("connection lost")

    def close(self):
        pass


class _LostConnection:
    """DB-API connection whose server went away mid-run."""

    def __init__(self, cursor_fails=False):
        self.cursor_fails = cursor_fails

    def cursor(self):
        if self.cursor_fails:
            raise sqlite3.OperationalError("connection lost")
        return _LostCursor()

    def commit(self):
        raise sqlite3.OperationalError("connection lost")

    def rollback(self):
        raise sqlite3.OperationalError("connection lost")


class TestExportConnectionFailures:
    """Driver failures always surface as ExportError."""

    def test_failed_rollback_raises_export_error(self):
        with pytest.raises(ExportError, match="could not be rolled back") as excinfo:
            export_top_customers(_LostConnection(), TABLE, _members(3))

        assert excinfo.value.batch_index == 0
        assert excinfo.value.rows_committed == 0
        assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)

    def test_failed_cursor_raises_export_error(self):
        with pytest.raises(ExportError):
            export_top_customers(_LostConnection(cursor_fails=True), TABLE, _members(3))

    def test_table_creation_failure_raises_export_error(self):
        with pytest.raises(ExportError, match="Cannot create sink table") as excinfo:
            ensure_export_table(_LostConnection(), TABLE)

        assert excinfo.value.batch_index is None
        assert excinfo.value.rows_committed == 0

    def test_closed_sqlite_connection(self):
        conn = sqlite3.connect(":memory:")
        conn.close()
        with pytest.raises(ExportError):
            ensure_export_table(conn, TABLE)
