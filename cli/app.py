from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_daily,
    render_frames,
    render_latest,
    render_locations,
    render_readings,
)
from device.frames import FrameDecoder
from models.records import NewReading, Reading
from services.aggregator import Aggregator


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Device simulator and viewer for the telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _pick_location(aggregator: Aggregator, readings: List[Reading], location: Optional[str]) -> str:
    if location:
        return location
    labels = aggregator.locations(readings)
    if not labels:
        typer.secho("No readings yet; pass --location explicitly.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return labels[0]


def _read_frame_bytes(source: str) -> bytes:
    path = Path(source)
    if path.is_file():
        return path.read_bytes()
    try:
        return bytes.fromhex(source.replace(":", " "))
    except ValueError as exc:
        raise typer.BadParameter(f"{source!r} is neither a file nor a hex string.") from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="Bearer token for the read path (defaults to TELEMETRY_TOKEN env).",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between refreshes when watching.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, refresh_interval=interval)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("decode")
def decode_command(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="File with raw frame bytes, or a hex string."),
    resync: bool = typer.Option(False, "--resync/--no-resync", help="Rescan for a start byte after a bad frame."),
    post: bool = typer.Option(False, "--post/--no-post", help="Send each decoded reading to the service."),
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner id used when posting."),
    serial: Optional[str] = typer.Option(None, "--serial", help="Device serial used when posting."),
    kind: str = typer.Option("water_level", "--kind", help="Sensor kind used when posting."),
) -> None:
    """Decode device frames and optionally forward them."""
    state = _get_state(ctx)
    if post and not (owner and serial):
        raise typer.BadParameter("--owner and --serial are required with --post.")

    decoder = FrameDecoder(resync=resync)
    frames = list(decoder.feed_bytes(_read_frame_bytes(source)))
    render_frames(frames, decoder.discarded_frames)

    if not post:
        return
    for frame in frames:
        stored = state.client.post_reading(
            NewReading(
                owner_id=owner or "",
                device_serial=serial or "",
                location_label=frame.location_label,
                sensor_kind=kind,
                value=frame.value,
            )
        )
        typer.secho(f"Stored reading id={stored.get('id')}", fg=typer.colors.GREEN)


@app.command("send")
def send_command(
    ctx: typer.Context,
    owner: str = typer.Option(..., "--owner"),
    serial: str = typer.Option(..., "--serial"),
    location: str = typer.Option(..., "--location", help="Location label."),
    value: int = typer.Option(..., "--value", min=0, max=0xFFFF),
    kind: str = typer.Option("water_level", "--kind"),
) -> None:
    """Post a single reading."""
    state = _get_state(ctx)
    stored = state.client.post_reading(
        NewReading(
            owner_id=owner,
            device_serial=serial,
            location_label=location,
            sensor_kind=kind,
            value=value,
        )
    )
    typer.secho(f"Stored reading id={stored.get('id')}", fg=typer.colors.GREEN)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    location: Optional[str] = typer.Option(None, "--location", help="Only this location label."),
    minutes: Optional[float] = typer.Option(None, "--minutes", help="Only the last N minutes."),
) -> None:
    """List the owner's readings, most recent first."""
    state = _get_state(ctx)
    render_readings(state.client.fetch_readings(location_label=location, minutes=minutes))


@app.command("locations")
def locations_command(ctx: typer.Context) -> None:
    """List location labels the owner has readings for."""
    state = _get_state(ctx)
    render_locations(Aggregator().locations(state.client.fetch_readings()))


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    location: Optional[str] = typer.Option(
        None, "--location", help="Location label (defaults to the first one reported)."
    ),
    minutes: float = typer.Option(10.0, "--minutes", help="Trailing window in minutes."),
    watch: bool = typer.Option(False, "--watch/--no-watch", help="Keep refreshing."),
    iterations: Optional[int] = typer.Option(None, "--iterations", help="Stop watching after N refreshes."),
) -> None:
    """Show the most recent value inside a trailing window."""
    state = _get_state(ctx)
    aggregator = Aggregator()
    remaining = iterations
    while True:
        readings = state.client.fetch_readings()
        label = _pick_location(aggregator, readings, location)
        window = aggregator.windowed(readings, label, minutes)
        render_latest(label, minutes, aggregator.latest_value(readings, label, minutes), len(window))
        if not watch:
            return
        if remaining is not None:
            remaining -= 1
            if remaining <= 0:
                return
        time.sleep(state.config.refresh_interval)


@app.command("daily")
def daily_command(
    ctx: typer.Context,
    location: Optional[str] = typer.Option(
        None, "--location", help="Location label (defaults to the first one reported)."
    ),
) -> None:
    """Show per-day average, minimum and maximum for a location."""
    state = _get_state(ctx)
    aggregator = Aggregator()
    readings = state.client.fetch_readings()
    label = _pick_location(aggregator, readings, location)
    render_daily(
        label,
        aggregator.daily_average(readings, label),
        aggregator.daily_min_max(readings, label),
    )
