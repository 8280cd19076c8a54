"""Turns a device-reported reading into a stored record."""

from __future__ import annotations

import logging
from dataclasses import fields
from functools import lru_cache

from datastore.telemetry_store import StoreUnavailableError, TelemetryStore, build_default_store
from models.records import NewReading, Reading

logger = logging.getLogger(__name__)


class IngestionValidationError(ValueError):
    """A reading descriptor is missing a required field."""


class IngestionService:
    """Appends one row per accepted reading.

    There is no deduplication: posting the same payload twice
    stores two rows, and retrying after a failure is the device's job.
    """

    def __init__(self, store: TelemetryStore) -> None:
        self.store = store

    def ingest(self, reading: NewReading) -> Reading:
        self._validate(reading)
        try:
            stored = self.store.append(reading)
        except StoreUnavailableError:
            logger.error(
                "Failed to store reading",
                extra={
                    "owner_id": reading.owner_id,
                    "device_serial": reading.device_serial,
                    "location": reading.location_label,
                },
            )
            raise
        logger.info(
            "Reading stored",
            extra={
                "reading_id": stored.id,
                "owner_id": stored.owner_id,
                "device_serial": stored.device_serial,
                "location": stored.location_label,
                "sensor_kind": stored.sensor_kind,
            },
        )
        return stored

    @staticmethod
    def _validate(reading: NewReading) -> None:
        missing = [
            field.name
            for field in fields(reading)
            if field.name != "value" and not str(getattr(reading, field.name) or "").strip()
        ]
        if missing:
            raise IngestionValidationError(f"Missing required fields: {', '.join(missing)}")
        if isinstance(reading.value, bool) or not isinstance(reading.value, int):
            raise IngestionValidationError("Field 'value' must be an integer.")


@lru_cache
def build_default_ingestion() -> IngestionService:
    return IngestionService(store=build_default_store())
