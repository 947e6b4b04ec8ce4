"""Tests for delivery commissions and their statistics."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from coursemax.errors import ValidationFailure
from coursemax.logic.commission import (
    aggregate_commission_stats,
    calculate_delivery_commission,
    period_bounds,
    resolve_commission_percent,
    resolve_range,
)

# Wednesday
NOW = datetime(2024, 5, 15, 14, 30, 12, tzinfo=timezone.utc)


def test_default_commission_split():
    split = calculate_delivery_commission("7.00")

    assert split["commission_percent"] == Decimal("20.0")
    assert split["platform_amount"] == Decimal("1.40")
    assert split["driver_amount"] == Decimal("5.60")


def test_commission_parts_always_add_up():
    split = calculate_delivery_commission("12.99", "17.5")

    assert split["platform_amount"] == Decimal("2.27")
    assert split["platform_amount"] + split["driver_amount"] == Decimal("12.99")


@pytest.mark.parametrize("fee, percent", [("-1", "20"), ("5", "-1"), ("5", "101")])
def test_commission_rejects_out_of_range(fee, percent):
    with pytest.raises(ValidationFailure):
        calculate_delivery_commission(fee, percent)


@pytest.mark.parametrize("setting, expected", [(None, "20.0"), ("", "20.0"), (15, "15"), ("25.5", "25.5"),
                                               ("n/a", "20.0")])
def test_resolve_commission_percent(setting, expected):
    assert resolve_commission_percent(setting) == Decimal(expected)


@pytest.mark.parametrize(
    "period, start",
    [
        ("day", datetime(2024, 5, 15, tzinfo=timezone.utc)),
        ("week", datetime(2024, 5, 12, tzinfo=timezone.utc)),
        ("month", datetime(2024, 5, 1, tzinfo=timezone.utc)),
        ("year", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ("fortnight", datetime(2024, 5, 1, tzinfo=timezone.utc)),
    ],
)
def test_period_bounds(period, start):
    assert period_bounds(period, NOW) == (start, NOW)


def test_week_starts_today_on_sunday():
    sunday = datetime(2024, 5, 19, 9, 0, tzinfo=timezone.utc)

    assert period_bounds("week", sunday)[0] == datetime(2024, 5, 19, tzinfo=timezone.utc)


def test_explicit_range_wins():
    start, end = resolve_range("day", "2024-04-01", "2024-04-30T23:59:59Z", now=NOW)

    assert start == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert end == datetime(2024, 4, 30, 23, 59, 59, tzinfo=timezone.utc)


def test_explicit_range_validation():
    with pytest.raises(ValidationFailure):
        resolve_range("month", "2024-05-01", "2024-04-01")
    with pytest.raises(ValidationFailure):
        resolve_range("month", "yesterday", "today")


RECORDS = [
    {"driver_id": "d1", "delivery_fee": "7.00", "commission_percent": "20", "platform_amount": "1.40",
     "driver_amount": "5.60", "status": "paid", "created_at": "2024-05-15T09:10:00+00:00",
     "profiles": {"first_name": "Alex", "last_name": "Roy", "email": "alex@example.com"}},
    {"driver_id": "d2", "delivery_fee": "14.00", "commission_percent": "20", "platform_amount": "2.80",
     "driver_amount": "11.20", "status": "pending", "created_at": "2024-05-15T09:45:00+00:00",
     "profiles": {"first_name": "Maude", "last_name": "Poirier", "email": "maude@example.com"}},
    {"driver_id": "d1", "delivery_fee": "10.00", "commission_percent": "15", "platform_amount": "1.50",
     "driver_amount": "8.50", "status": "pending", "created_at": "2024-05-14T18:00:00Z"},
    {"driver_id": None, "delivery_fee": "5.00", "commission_percent": "20", "platform_amount": "1.00",
     "driver_amount": "4.00", "status": "cancelled", "created_at": "2024-05-14T18:30:00Z"},
]


def test_aggregate_totals_and_status_counts():
    stats = aggregate_commission_stats(RECORDS, period="month")

    assert stats["total_commissions"] == 4
    assert stats["total_delivery_fees"] == Decimal("36.00")
    assert stats["total_platform_amount"] == Decimal("6.70")
    assert stats["total_driver_amount"] == Decimal("29.30")
    assert stats["average_commission_percent"] == Decimal("18.75")
    assert stats["by_status"] == {"pending": 2, "paid": 1, "cancelled": 1}


def test_aggregate_by_day_buckets():
    stats = aggregate_commission_stats(RECORDS, period="month")

    assert set(stats["by_period"]) == {"2024-05-15", "2024-05-14"}
    assert stats["by_period"]["2024-05-15"]["count"] == 2
    assert stats["by_period"]["2024-05-15"]["total_delivery_fees"] == Decimal("21.00")


def test_aggregate_by_hour_buckets_for_day():
    stats = aggregate_commission_stats(RECORDS[:2], period="day")

    assert list(stats["by_period"]) == ["9:00"]
    assert stats["by_period"]["9:00"]["total_platform_amount"] == Decimal("4.20")


def test_top_drivers_by_earned_amount():
    top = aggregate_commission_stats(RECORDS)["top_drivers"]

    assert [d["driver_id"] for d in top] == ["d1", "d2"]
    assert top[0]["total_amount"] == Decimal("14.10")
    assert top[0]["count"] == 2
    assert top[0]["name"] == "Alex Roy"


def test_no_top_drivers_when_filtered_by_driver():
    assert aggregate_commission_stats(RECORDS[:1], driver_id="d1")["top_drivers"] == []


def test_empty_stats():
    stats = aggregate_commission_stats([])

    assert stats["total_commissions"] == 0
    assert stats["average_commission_percent"] == 0
    assert stats["by_period"] == {}
