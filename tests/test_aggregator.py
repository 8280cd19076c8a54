"""Unit tests for the aggregation logic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.records import Reading
from services.aggregator import Aggregator, DailyAverage, DailyRange, ZERO_VALUE

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _reading(value: int, recorded_at: datetime, location: str = "Qwave", reading_id: int = 0) -> Reading:
    """Helper to build deterministic readings."""

    return Reading(
        id=reading_id,
        owner_id="owner-1",
        device_serial="esp32-01",
        location_label=location,
        sensor_kind="water_level",
        value=value,
        recorded_at=recorded_at,
    )


def test_windowed_keeps_only_recent_readings_for_location() -> None:
    aggregator = Aggregator()
    readings = [
        _reading(20, NOW - timedelta(minutes=20)),
        _reading(2, NOW - timedelta(minutes=2)),
        _reading(6, NOW - timedelta(minutes=6)),
        _reading(99, NOW - timedelta(minutes=1), location="Riverside"),
    ]

    window = aggregator.windowed(readings, "Qwave", 5, now=NOW)

    assert [reading.value for reading in window] == [2]


def test_windowed_orders_newest_first() -> None:
    aggregator = Aggregator()
    readings = [
        _reading(3, NOW - timedelta(minutes=3)),
        _reading(1, NOW - timedelta(minutes=1)),
        _reading(2, NOW - timedelta(minutes=2)),
    ]

    window = aggregator.windowed(readings, "Qwave", 10, now=NOW)

    assert [reading.value for reading in window] == [1, 2, 3]


def test_latest_value_is_first_of_window() -> None:
    aggregator = Aggregator()
    readings = [
        _reading(5, NOW - timedelta(minutes=4)),
        _reading(8, NOW - timedelta(seconds=30)),
    ]

    assert aggregator.latest_value(readings, "Qwave", 10, now=NOW) == 8


def test_latest_value_on_empty_window_is_zero() -> None:
    aggregator = Aggregator()

    assert aggregator.latest_value([], "Qwave", 10, now=NOW) == ZERO_VALUE
    stale = [_reading(5, NOW - timedelta(hours=1))]
    assert aggregator.latest_value(stale, "Qwave", 10, now=NOW) == ZERO_VALUE


def test_daily_average_and_min_max_group_by_day() -> None:
    aggregator = Aggregator()
    day1 = datetime(2024, 3, 1, 3, 0, tzinfo=timezone.utc)
    day2 = datetime(2024, 3, 2, 3, 0, tzinfo=timezone.utc)
    readings = [
        _reading(10, day1),
        _reading(20, day1 + timedelta(hours=1)),
        _reading(30, day2),
    ]

    assert aggregator.daily_average(readings, "Qwave") == [
        DailyAverage(date="2024-03-01", average=15.0),
        DailyAverage(date="2024-03-02", average=30.0),
    ]
    assert aggregator.daily_min_max(readings, "Qwave") == [
        DailyRange(date="2024-03-01", min=10, max=20),
        DailyRange(date="2024-03-02", min=30, max=30),
    ]


def test_daily_buckets_use_fixed_timezone_not_utc() -> None:
    aggregator = Aggregator()
    # 18:00 UTC is already the next day at UTC+7.
    late_utc = datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)
    early_utc = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    averages = aggregator.daily_average([_reading(4, late_utc), _reading(2, early_utc)], "Qwave")

    assert [item.date for item in averages] == ["2024-03-01", "2024-03-02"]


def test_daily_aggregations_skip_days_without_data_and_other_locations() -> None:
    aggregator = Aggregator()
    readings = [
        _reading(1, datetime(2024, 3, 1, 5, tzinfo=timezone.utc)),
        _reading(9, datetime(2024, 3, 4, 5, tzinfo=timezone.utc)),
        _reading(100, datetime(2024, 3, 2, 5, tzinfo=timezone.utc), location="Reservoir"),
    ]

    days = [item.date for item in aggregator.daily_min_max(readings, "Qwave")]

    assert days == ["2024-03-01", "2024-03-04"]


def test_empty_input_yields_empty_results() -> None:
    aggregator = Aggregator()

    assert aggregator.windowed([], "Qwave", 5, now=NOW) == []
    assert aggregator.daily_average([], "Qwave") == []
    assert aggregator.daily_min_max([], "Qwave") == []


def test_custom_timezone_changes_buckets() -> None:
    aggregator = Aggregator(timezone_name="UTC")
    late_utc = datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)

    assert aggregator.day_key(late_utc) == "2024-03-01"
    assert Aggregator().day_key(late_utc) == "2024-03-02"


def test_locations_in_first_seen_order() -> None:
    aggregator = Aggregator()
    readings = [
        _reading(1, NOW, location="Riverside"),
        _reading(1, NOW, location="Qwave"),
        _reading(1, NOW, location="Riverside"),
    ]

    assert aggregator.locations(readings) == ["Riverside", "Qwave"]


@pytest.mark.parametrize("minutes", [1, 5, 30])
def test_window_boundary_is_inclusive(minutes: int) -> None:
    aggregator = Aggregator()
    readings = [_reading(7, NOW - timedelta(minutes=minutes))]

    assert aggregator.latest_value(readings, "Qwave", minutes, now=NOW) == 7
