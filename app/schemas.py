"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.records import NewReading


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReadingIn(_CamelModel):
    """Reading descriptor posted by a device that already decoded its frame."""

    owner_id: str = Field(..., min_length=1, max_length=64)
    device_serial: str = Field(..., min_length=1, max_length=255)
    location_label: str = Field(..., min_length=1, max_length=255)
    sensor_kind: str = Field(..., min_length=1, max_length=100)
    # Range is not re-checked here; the device decoded it from 16 bits.
    value: int = Field(..., strict=True)

    def to_domain(self) -> NewReading:
        return NewReading(
            owner_id=self.owner_id,
            device_serial=self.device_serial,
            location_label=self.location_label,
            sensor_kind=self.sensor_kind,
            value=self.value,
        )


class ReadingOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    owner_id: str
    device_serial: str
    location_label: str
    sensor_kind: str
    value: int
    recorded_at: datetime


class ErrorResponse(BaseModel):
    message: str
    errors: Optional[List[Any]] = None
