from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig
from models.records import NewReading, Reading


def parse_reading(payload: Dict[str, Any]) -> Reading:
    recorded_raw = str(payload["recordedAt"])
    if recorded_raw.endswith("Z"):
        recorded_raw = recorded_raw[:-1] + "+00:00"
    recorded_at = datetime.fromisoformat(recorded_raw)
    if recorded_at.tzinfo is None:
        recorded_at = recorded_at.replace(tzinfo=timezone.utc)
    return Reading(
        id=int(payload.get("id", 0)),
        owner_id=str(payload.get("ownerId", "")),
        device_serial=str(payload.get("deviceSerial", "")),
        location_label=str(payload["locationLabel"]),
        sensor_kind=str(payload.get("sensorKind", "")),
        value=int(payload["value"]),
        recorded_at=recorded_at,
    )


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def post_reading(self, reading: NewReading) -> Dict[str, Any]:
        payload = {
            "ownerId": reading.owner_id,
            "deviceSerial": reading.device_serial,
            "locationLabel": reading.location_label,
            "sensorKind": reading.sensor_kind,
            "value": reading.value,
        }
        try:
            response = self._client.post("/telemetry", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def fetch_readings(
        self,
        location_label: Optional[str] = None,
        minutes: Optional[float] = None,
    ) -> List[Reading]:
        if not self._config.token:
            raise typer.BadParameter("A token is required (--token or TELEMETRY_TOKEN).")
        params: Dict[str, Any] = {}
        if location_label:
            params["locationLabel"] = location_label
        if minutes:
            params["minutes"] = minutes
        try:
            response = self._client.get("/telemetry", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return [parse_reading(item) for item in response.json()]

    @staticmethod
    def _handle_transport_error(exc: httpx.TransportError) -> None:
        typer.secho(f"Could not reach the service: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("message") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
