"""Load the pipeline's input record streams.

Two sources are supported:

- a JSON document holding ``events``, ``prices`` and ``contacts`` lists,
- a relational database reached through a DB-API 2.0 connection, read with
  one single-table query per stream (no joins).

Any failure while loading raises :class:`~top_customers.errors.LoadError`;
the pipeline never aggregates over a partial load.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, TypeVar

from top_customers.config import EMAIL_CHANNEL_TYPE_ID, PURCHASE_EVENT_TYPE_ID
from top_customers.errors import LoadError
from top_customers.export.sink import SqlDialect
from top_customers.foundation.records import ContactRecord, PricedEvent, PriceRecord

logger = logging.getLogger(__name__)

MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM

T = TypeVar("T")


def _naive_utc(value: datetime) -> datetime:
    # All loaded timestamps are naive; aware ones are converted to UTC first
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return _naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"Expected a datetime or ISO-8601 string, got {value!r}")


def _as_quantity(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return int(value)
    raise ValueError(f"Quantity must be a whole number: {value!r}")


def _as_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value: {value!r}") from exc


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def event_from_mapping(row: Mapping[str, Any]) -> PricedEvent:
    return PricedEvent(
        customer_id=str(row["customer_id"]),
        content_id=str(row["content_id"]),
        quantity=_as_quantity(row["quantity"]),
        event_ts=_as_datetime(row["event_ts"]),
        event_data_id=_optional_int(row.get("event_data_id")),
    )


def price_from_mapping(row: Mapping[str, Any]) -> PriceRecord:
    return PriceRecord(
        content_id=str(row["content_id"]),
        unit_price=_as_decimal(row["unit_price"]),
        inserted_at=_as_datetime(row["inserted_at"]),
        price_id=_optional_int(row.get("price_id")),
        currency=row.get("currency"),
    )


def contact_from_mapping(row: Mapping[str, Any]) -> ContactRecord:
    return ContactRecord(
        customer_id=str(row["customer_id"]),
        contact_value=str(row["contact_value"]),
        inserted_at=_as_datetime(row["inserted_at"]),
        contact_id=_optional_int(row.get("contact_id")),
    )


def _convert(
    rows: Iterable[Mapping[str, Any]],
    factory: Callable[[Mapping[str, Any]], T],
    stream: str,
) -> list[T]:
    records: list[T] = []
    for idx, row in enumerate(rows):
        try:
            records.append(factory(row))
        except KeyError as exc:
            raise LoadError(
                f"{stream} record at index {idx} missing key {exc.args[0]}"
            ) from exc
        except (AttributeError, TypeError, ValueError) as exc:
            raise LoadError(f"{stream} record at index {idx} is invalid: {exc}") from exc
    return records


def load_json_records(
    path: Path,
    since: date | datetime,
    event_type_id: int | None = PURCHASE_EVENT_TYPE_ID,
) -> tuple[list[PricedEvent], list[PriceRecord], list[ContactRecord]]:
    """Load events, prices and contacts from a JSON document.

    Events are filtered to ``event_ts >= since`` and, for events that carry
    an ``event_type_id`` field, to ``event_type_id``. Prices and contacts are
    returned unfiltered, history included.
    """
    try:
        resolved = path.resolve()
        size = resolved.stat().st_size
    except OSError as exc:
        raise LoadError(f"Cannot read input file {path}: {exc}") from exc
    if size > MAX_INPUT_BYTES:
        raise LoadError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    try:
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise LoadError(f"Cannot parse input file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise LoadError("Expected a JSON object with events, prices and contacts")

    for stream in ("events", "prices", "contacts"):
        if not isinstance(payload.get(stream, []), list):
            raise LoadError(f"Expected '{stream}' to be a list")

    lower_bound = _as_datetime(since)
    try:
        raw_events = [
            row
            for row in payload.get("events", [])
            if event_type_id is None
            or row.get("event_type_id") is None
            or int(row["event_type_id"]) == event_type_id
        ]
    except (AttributeError, TypeError, ValueError) as exc:
        raise LoadError(f"Invalid event record: {exc}") from exc
    events = _convert(raw_events, event_from_mapping, "Event")
    events = [e for e in events if e.event_ts >= lower_bound]
    prices = _convert(payload.get("prices", []), price_from_mapping, "Price")
    contacts = _convert(payload.get("contacts", []), contact_from_mapping, "Contact")

    logger.info(
        f"Loaded {len(events)} events, {len(prices)} prices, {len(contacts)} contacts from {path}"
    )
    return events, prices, contacts


def _query(
    connection: Any,
    sql: str,
    params: tuple[Any, ...],
    columns: tuple[str, ...],
    table: str,
) -> list[dict[str, Any]]:
    try:
        cursor = connection.cursor()
        try:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        finally:
            cursor.close()
    except Exception as exc:
        raise LoadError(f"Failed to load {table}: {exc}") from exc
    return [dict(zip(columns, row)) for row in rows]


def load_events(
    connection: Any,
    since: date | datetime,
    event_type_id: int = PURCHASE_EVENT_TYPE_ID,
    dialect: SqlDialect = SqlDialect.SQLITE,
) -> list[PricedEvent]:
    """Read purchase events of one kind dated on or after ``since``."""
    ph = dialect.placeholder
    lower_bound: Any = _as_datetime(since)
    date_filter = f"EventDate >= {ph}"
    if dialect is SqlDialect.SQLITE:
        # Dates are stored as text; datetime() normalises both the "T" and the
        # space separator before comparing
        lower_bound = lower_bound.isoformat(sep=" ")
        date_filter = f"datetime(EventDate) >= datetime({ph})"
    sql = (
        "SELECT EventDataID, ContentID, CustomerID, EventDate, Quantity "
        f"FROM CustomerEventData WHERE EventTypeID = {ph} AND {date_filter}"
    )
    rows = _query(
        connection,
        sql,
        (event_type_id, lower_bound),
        ("event_data_id", "content_id", "customer_id", "event_ts", "quantity"),
        "CustomerEventData",
    )
    events = _convert(rows, event_from_mapping, "Event")
    logger.info(f"Loaded {len(events)} events from CustomerEventData")
    return events


def load_content_prices(
    connection: Any, dialect: SqlDialect = SqlDialect.SQLITE
) -> list[PriceRecord]:
    """Read the full content price history."""
    sql = "SELECT ContentPriceID, ContentID, Price, Currency, InsertDate FROM ContentPrice"
    rows = _query(
        connection,
        sql,
        (),
        ("price_id", "content_id", "unit_price", "currency", "inserted_at"),
        "ContentPrice",
    )
    prices = _convert(rows, price_from_mapping, "Price")
    logger.info(f"Loaded {len(prices)} content prices from ContentPrice")
    return prices


def load_customer_contacts(
    connection: Any,
    channel_type_id: int = EMAIL_CHANNEL_TYPE_ID,
    dialect: SqlDialect = SqlDialect.SQLITE,
) -> list[ContactRecord]:
    """Read the contact history of one channel kind (email by default)."""
    sql = (
        "SELECT CustomerChannelID, CustomerID, ChannelValue, InsertDate "
        f"FROM CustomerData WHERE ChannelTypeID = {dialect.placeholder}"
    )
    rows = _query(
        connection,
        sql,
        (channel_type_id,),
        ("contact_id", "customer_id", "contact_value", "inserted_at"),
        "CustomerData",
    )
    contacts = _convert(rows, contact_from_mapping, "Contact")
    logger.info(f"Loaded {len(contacts)} customer contacts from CustomerData")
    return contacts
