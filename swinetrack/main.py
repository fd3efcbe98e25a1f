# main.py
"""
SwineTrack entry point.

Builds the backend client from the environment and exposes the command line:

- ``swinetrack gui``                        desktop viewer (PyQt6)
- ``swinetrack render PAYLOAD [IMAGE] -o``  overlay a thermal JSON document on a frame
- ``swinetrack report --range today -o``    readings history as PDF
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from PIL import Image, UnidentifiedImageError

from .backend import BackendClient, BackendError
from .config import AppConfig
from .io_utils import (
    REPORT_RANGES,
    ensure_logging,
    export_grid_csv,
    export_stats_json,
    render_stats,
    resolve_report_range,
    save_png,
    write_readings_pdf,
)
from .overlay import composite_image, render_payload
from .payload import parse_snapshot_payload
from .processing import RendererParams

logger = logging.getLogger("swinetrack")

app = typer.Typer(help="SwineTrack thermal pen monitor", no_args_is_help=True)


def build_client(config: AppConfig) -> BackendClient:
    return BackendClient(config.backend())


@app.command("gui")
def gui_cmd():
    """Open the desktop viewer."""
    config = AppConfig.from_env()
    from .gui import run_gui

    raise typer.Exit(code=run_gui(config, build_client(config)))


@app.command("render")
def render_cmd(
    payload_file: Path = typer.Argument(..., help="Thermal JSON document", exists=True, dir_okay=False, readable=True),
    image_file: Optional[Path] = typer.Argument(None, help="Optical frame to draw on", exists=True, dir_okay=False),
    output: Path = typer.Option(Path("overlay.png"), "--output", "-o", help="PNG to write"),
    opacity: Optional[float] = typer.Option(None, "--opacity", help="Overlay opacity 0..1"),
    factor: Optional[float] = typer.Option(None, "--factor", help="Interpolation factor (1 = performance mode)"),
    offset: Optional[float] = typer.Option(None, "--offset", help="Calibration offset in degrees C"),
    csv_out: Optional[Path] = typer.Option(None, "--csv", help="Also export the processed grid as CSV"),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Also export frame statistics as JSON"),
):
    """Render a thermal overlay to PNG."""
    config = AppConfig.from_env()
    ensure_logging(config.log_path)
    base = config.live_params
    params = RendererParams(
        overlay_opacity=base.overlay_opacity if opacity is None else opacity,
        interpolation_factor=base.interpolation_factor if factor is None else factor,
        calibration_offset=base.calibration_offset if offset is None else offset,
    ).clamped()

    payload = parse_snapshot_payload(payload_file.read_bytes())
    if not payload.is_complete:
        logger.warning("%s has %d samples for a %dx%d frame; nothing to draw",
                       payload_file, payload.samples.size, payload.width, payload.height)
    render = render_payload(payload, params)

    frame = None
    if image_file is not None:
        try:
            frame = Image.open(str(image_file))
            frame.load()
        except (UnidentifiedImageError, OSError) as ex:
            typer.echo(f"Cannot read image {image_file}: {ex}", err=True)
            raise typer.Exit(code=1)

    save_png(composite_image(render.descriptor, frame), output)
    if csv_out is not None:
        export_grid_csv(render.grid, csv_out)
    if json_out is not None:
        export_stats_json(render_stats(render, payload), json_out)

    a = render.analysis
    hotspot = f"hotspot {a.hotspot}" if a.hotspot is not None else "no hotspot"
    typer.echo(f"Wrote {output} ({render.grid.display_width}x{render.grid.display_height}, "
               f"min {a.t_min:.1f} max {a.t_max:.1f}, {hotspot})")


@app.command("report")
def report_cmd(
    range_kind: str = typer.Option("today", "--range", "-r", help=f"One of: {', '.join(REPORT_RANGES)}"),
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="Custom range start date"),
    end: Optional[datetime] = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Custom range end date"),
    output: Path = typer.Option(Path("report.pdf"), "--output", "-o", help="PDF to write"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Device id (default from SWINETRACK_DEVICE_ID)"),
):
    """Export a readings history report as PDF."""
    config = AppConfig.from_env()
    ensure_logging(config.log_path)
    try:
        lo, hi, period = resolve_report_range(range_kind, start=start, end=end)
    except ValueError as ex:
        typer.echo(str(ex), err=True)
        raise typer.Exit(code=2)

    client = build_client(config)
    device_id = device or config.device_id
    try:
        rows = client.fetch_readings_range(device_id, lo, hi)
    except BackendError as ex:
        typer.echo(f"Failed to load readings: {ex}", err=True)
        raise typer.Exit(code=1)
    if not rows:
        typer.echo("No data available for the selected range.", err=True)
        raise typer.Exit(code=1)

    write_readings_pdf(rows, period, output)
    typer.echo(f"Wrote {output} ({len(rows)} records, {period})")


def run():
    app()


if __name__ == "__main__":
    run()
