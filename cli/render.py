from __future__ import annotations

from typing import Any, Iterable, Sequence

import typer

from device.frames import DecodedFrame
from models.records import Reading
from services.aggregator import DailyAverage, DailyRange


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_frames(frames: Sequence[DecodedFrame], discarded: int) -> None:
    echo_heading("Decoded Frames")
    if not frames:
        typer.echo("No complete frames decoded.")
    for frame in frames:
        typer.echo(f"  - {frame.location_code} ({frame.location_label}): {frame.value}")
    if discarded:
        typer.secho(f"Discarded frames: {discarded}", fg=typer.colors.YELLOW)


def render_readings(readings: Sequence[Reading]) -> None:
    echo_heading("Readings")
    if not readings:
        typer.echo("No readings found.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.recorded_at.isoformat()} {reading.location_label} "
            f"{reading.sensor_kind}={reading.value} ({reading.device_serial})"
        )


def render_latest(location_label: str, minutes: float, value: int, window_size: int) -> None:
    echo_heading(f"Latest value for {location_label}")
    echo_key_values(
        [
            ("window_minutes", minutes),
            ("readings_in_window", window_size),
            ("latest_value", value),
        ]
    )


def render_daily(
    location_label: str,
    averages: Sequence[DailyAverage],
    ranges: Sequence[DailyRange],
) -> None:
    echo_heading(f"Daily statistics for {location_label}")
    if not averages:
        typer.echo("No readings found.")
        return
    by_day = {item.date: item for item in ranges}
    for average in averages:
        day_range = by_day[average.date]
        typer.echo(
            f"  - {average.date}: average={average.average:.2f} "
            f"min={day_range.min} max={day_range.max}"
        )


def render_locations(labels: Sequence[str]) -> None:
    echo_heading("Locations")
    if not labels:
        typer.echo("No readings yet.")
    for label in labels:
        typer.echo(f"  - {label}")
