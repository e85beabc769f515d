"""Tests for latest-wins resolution of prices and contact values."""

import random
from datetime import datetime
from decimal import Decimal

import pytest

from top_customers.foundation.records import ContactRecord, PriceRecord
from top_customers.foundation.resolver import (
    build_contact_map,
    build_price_map,
    resolve_latest,
)
from top_customers.loaders import contact_from_mapping, price_from_mapping


class TestRecords:
    """Test record dataclass validation."""

    def test_negative_price_raises_error(self):
        """Negative unit price should raise ValueError."""
        with pytest.raises(ValueError, match="Unit price cannot be negative"):
            PriceRecord("10", Decimal("-1.00"), datetime(2024, 1, 1))

    def test_zero_price_is_valid(self):
        """Free content is a valid price."""
        record = PriceRecord("10", Decimal("0"), datetime(2024, 1, 1))
        assert record.unit_price == Decimal("0")


class TestResolveLatest:
    """Test the generic resolver."""

    def test_empty_input_returns_empty_mapping(self):
        assert resolve_latest([], key=lambda r: r[0], recency=lambda r: r[1]) == {}

    def test_strictly_greater_recency_replaces(self):
        rows = [("a", 1, "old"), ("a", 3, "new"), ("a", 2, "mid")]
        latest = resolve_latest(rows, key=lambda r: r[0], recency=lambda r: r[1])
        assert latest == {"a": ("a", 3, "new")}

    def test_equal_recency_keeps_first_processed(self):
        """Without a secondary key, ties go to the record processed first."""
        rows = [("a", 1, "first"), ("a", 1, "second")]
        latest = resolve_latest(rows, key=lambda r: r[0], recency=lambda r: r[1])
        assert latest["a"][2] == "first"

    def test_keys_resolved_independently(self):
        rows = [("a", 5, "a5"), ("b", 1, "b1"), ("a", 2, "a2"), ("b", 9, "b9")]
        latest = resolve_latest(rows, key=lambda r: r[0], recency=lambda r: r[1])
        assert latest == {"a": ("a", 5, "a5"), "b": ("b", 9, "b9")}


class TestBuildPriceMap:
    """Test price map construction."""

    def test_single_price_per_content(self):
        prices = [
            PriceRecord("10", Decimal("9.99"), datetime(2024, 1, 1), price_id=1),
            PriceRecord("11", Decimal("5.00"), datetime(2024, 1, 1), price_id=2),
        ]
        assert build_price_map(prices) == {
            "10": Decimal("9.99"),
            "11": Decimal("5.00"),
        }

    def test_multiple_prices_keeps_latest_inserted(self):
        prices = [
            PriceRecord("10", Decimal("5.00"), datetime(2024, 1, 1), price_id=1),
            PriceRecord("10", Decimal("12.00"), datetime(2024, 3, 1), price_id=2),
            PriceRecord("10", Decimal("7.50"), datetime(2024, 2, 1), price_id=3),
        ]
        assert build_price_map(prices) == {"10": Decimal("12.00")}

    def test_empty_input(self):
        assert build_price_map([]) == {}

    def test_already_resolved_input_is_unchanged(self):
        """Resolving one record per key returns exactly those records."""
        prices = [
            PriceRecord(str(i), Decimal(i), datetime(2024, 1, i + 1), price_id=i)
            for i in range(1, 10)
        ]
        assert build_price_map(prices) == {p.content_id: p.unit_price for p in prices}

    def test_tie_on_inserted_at_decided_by_price_id(self):
        ts = datetime(2024, 1, 1)
        prices = [
            PriceRecord("10", Decimal("3.00"), ts, price_id=8),
            PriceRecord("10", Decimal("1.00"), ts, price_id=9),
        ]
        assert build_price_map(prices) == {"10": Decimal("1.00")}
        assert build_price_map(list(reversed(prices))) == {"10": Decimal("1.00")}

    def test_tie_resolution_is_order_independent(self):
        """Any permutation of the input resolves to the same mapping."""
        ts = datetime(2024, 1, 1)
        prices = [
            PriceRecord("10", Decimal("3.00"), ts),
            PriceRecord("10", Decimal("4.00"), ts),
            PriceRecord("10", Decimal("2.00"), ts),
            PriceRecord("11", Decimal("1.00"), ts, price_id=1),
            PriceRecord("11", Decimal("6.00"), ts),
        ]
        expected = build_price_map(prices)
        rng = random.Random(7)
        for _ in range(20):
            shuffled = prices[:]
            rng.shuffle(shuffled)
            assert build_price_map(shuffled) == expected
        assert expected == {"10": Decimal("4.00"), "11": Decimal("1.00")}

    def test_resolved_value_has_max_inserted_at(self):
        rng = random.Random(3)
        prices = [
            PriceRecord(
                str(rng.randrange(5)),
                Decimal(rng.randrange(100)),
                datetime(2024, 1, 1 + rng.randrange(28)),
                price_id=i,
            )
            for i in range(200)
        ]
        resolved = build_price_map(prices)
        for content_id, price in resolved.items():
            candidates = [p for p in prices if p.content_id == content_id]
            newest = max(p.inserted_at for p in candidates)
            assert any(
                p.unit_price == price and p.inserted_at == newest for p in candidates
            )


class TestBuildContactMap:
    """Test contact map construction."""

    def test_single_email_per_customer(self):
        contacts = [
            ContactRecord("100", "a@example.com", datetime(2024, 1, 1)),
            ContactRecord("101", "b@example.com", datetime(2024, 1, 1)),
        ]
        assert build_contact_map(contacts) == {
            "100": "a@example.com",
            "101": "b@example.com",
        }

    def test_multiple_emails_keeps_latest_inserted(self):
        contacts = [
            ContactRecord("100", "new@example.com", datetime(2024, 6, 1), contact_id=2),
            ContactRecord("100", "old@example.com", datetime(2023, 6, 1), contact_id=1),
        ]
        assert build_contact_map(contacts) == {"100": "new@example.com"}

    def test_empty_input(self):
        assert build_contact_map([]) == {}


class TestLoadedHistories:
    """Histories mixing UTC-designated and plain timestamps."""

    def test_price_history_with_utc_designator(self):
        prices = [
            price_from_mapping(
                {"content_id": "10", "unit_price": "4.00", "inserted_at": "2020-01-01T00:00:00Z"}
            ),
            price_from_mapping(
                {"content_id": "10", "unit_price": "6.00", "inserted_at": "2020-02-01T00:00:00"}
            ),
            price_from_mapping(
                {"content_id": "11", "unit_price": "1.00", "inserted_at": "2020-03-01T00:30:00+01:00"}
            ),
            price_from_mapping(
                {"content_id": "11", "unit_price": "2.00", "inserted_at": "2020-02-29T23:45:00"}
            ),
        ]
        # 00:30 at +01:00 is 23:30 UTC, before the plain 23:45 row
        assert build_price_map(prices) == {"10": Decimal("6.00"), "11": Decimal("2.00")}

    def test_contact_history_with_utc_designator(self):
        contacts = [
            contact_from_mapping(
                {"customer_id": "1", "contact_value": "new@example.com", "inserted_at": "2021-06-01T08:00:00Z"}
            ),
            contact_from_mapping(
                {"customer_id": "1", "contact_value": "old@example.com", "inserted_at": "2021-06-01T07:59:59"}
            ),
        ]
        assert build_contact_map(contacts) == {"1": "new@example.com"}
