"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class NewReading:
    """A reading as reported by a device, before the store stamps it."""

    owner_id: str
    device_serial: str
    location_label: str
    sensor_kind: str
    value: int


@dataclass(frozen=True, slots=True)
class Reading:
    """A stored telemetry sample. Immutable once written."""

    id: int
    owner_id: str
    device_serial: str
    location_label: str
    sensor_kind: str
    value: int
    recorded_at: datetime
