"""Aggregation logic for telemetry readings.

All operations work on readings already fetched for a single owner and do
no I/O. Day buckets are calendar dates in ``DAILY_TIMEZONE`` regardless of
where the server or the device runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from models.records import Reading

DAILY_TIMEZONE = "Asia/Bangkok"
ZERO_VALUE = 0


@dataclass(frozen=True)
class DailyAverage:
    date: str
    average: float


@dataclass(frozen=True)
class DailyRange:
    date: str
    min: int
    max: int


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def __init__(self, timezone_name: str = DAILY_TIMEZONE) -> None:
        self.timezone_name = timezone_name
        self._zone: tzinfo = ZoneInfo(timezone_name)

    def windowed(
        self,
        readings: Iterable[Reading],
        location_label: str,
        minutes: float,
        now: Optional[datetime] = None,
    ) -> List[Reading]:
        """Readings for ``location_label`` recorded within the last ``minutes``, newest first."""
        reference = now or datetime.now(timezone.utc)
        cutoff = reference - timedelta(minutes=minutes)
        selected = [
            reading
            for reading in readings
            if reading.location_label == location_label and reading.recorded_at >= cutoff
        ]
        selected.sort(key=lambda reading: reading.recorded_at, reverse=True)
        return selected

    def latest_value(
        self,
        readings: Iterable[Reading],
        location_label: str,
        minutes: float,
        now: Optional[datetime] = None,
    ) -> int:
        window = self.windowed(readings, location_label, minutes, now=now)
        if not window:
            return ZERO_VALUE
        return window[0].value

    def day_key(self, moment: datetime) -> str:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._zone).date().isoformat()

    def daily_average(self, readings: Iterable[Reading], location_label: str) -> List[DailyAverage]:
        totals: Dict[str, list[int]] = {}
        for reading in readings:
            if reading.location_label != location_label:
                continue
            bucket = totals.setdefault(self.day_key(reading.recorded_at), [0, 0])
            bucket[0] += reading.value
            bucket[1] += 1

        return [
            DailyAverage(date=day, average=total / count)
            for day, (total, count) in sorted(totals.items())
        ]

    def daily_min_max(self, readings: Iterable[Reading], location_label: str) -> List[DailyRange]:
        ranges: Dict[str, tuple[int, int]] = {}
        for reading in readings:
            if reading.location_label != location_label:
                continue
            day = self.day_key(reading.recorded_at)
            current = ranges.get(day)
            if current is None:
                ranges[day] = (reading.value, reading.value)
            else:
                ranges[day] = (min(current[0], reading.value), max(current[1], reading.value))

        return [DailyRange(date=day, min=low, max=high) for day, (low, high) in sorted(ranges.items())]

    def locations(self, readings: Iterable[Reading]) -> List[str]:
        """Distinct location labels in first-seen order."""
        seen: Dict[str, None] = {}
        for reading in readings:
            seen.setdefault(reading.location_label, None)
        return list(seen)
