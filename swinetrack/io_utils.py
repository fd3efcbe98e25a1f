# io_utils.py
"""
IO utilities for SwineTrack.

- Logging setup
- Save rendered overlays as PNG
- Export processed grids and render statistics as CSV/JSON
- Resolve report date ranges and write a readings PDF via ReportLab
"""
from __future__ import annotations

import csv
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, time as dtime, timedelta, timezone, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from PIL import Image

from .backend import ReadingRow
from .overlay import ThermalRender
from .payload import ThermalPayload
from .processing import ProcessedGrid

logger = logging.getLogger(__name__)

REPORT_TIMEZONE = "Asia/Manila"
REPORT_RANGES = ("today", "yesterday", "this_month", "custom")
THEME_COLOR = "#487307"
# Base-14 PDF fonts have no omega glyph
REPORT_HEADERS = ("Date", "Time", "Temp (°C)", "Humidity (%)", "Ammonia (kOhm)")


def ensure_logging(log_path: Optional[Union[str, Path]] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure the package logger with console and optional file output.
    """
    logger = logging.getLogger("swinetrack")
    logger.setLevel(level)
    if not logger.handlers:
        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(fmt)
        logger.addHandler(ch)
        if log_path:
            fh = logging.FileHandler(log_path, encoding="utf-8")
            fh.setFormatter(fmt)
            logger.addHandler(fh)
    return logger


def save_png(img: Image.Image, dest_path: Union[str, Path]) -> None:
    img.save(str(dest_path), format="PNG")


def export_grid_csv(grid: ProcessedGrid, dest_path: Union[str, Path]) -> None:
    """
    Export the processed grid (degrees C) as CSV, one display row per line.
    """
    with open(dest_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["# thermal_rows", grid.display_height, "cols", grid.display_width])
        if grid.size == 0:
            return
        for row in grid.as_2d():
            writer.writerow([round(float(v), 3) for v in row])


def render_stats(render: ThermalRender, payload: Optional[ThermalPayload] = None) -> Dict[str, object]:
    a = render.analysis
    stats: Dict[str, object] = {
        "display_width": render.grid.display_width,
        "display_height": render.grid.display_height,
        "temperature_min": a.t_min,
        "temperature_max": a.t_max,
        "hotspot": list(a.hotspot) if a.hotspot is not None else None,
        "cells": len(render.descriptor.cells),
    }
    if payload is not None:
        stats.update({
            "source_width": payload.width,
            "source_height": payload.height,
            "device_t_min": payload.t_min,
            "device_t_max": payload.t_max,
            "device_t_avg": payload.t_avg,
        })
    return stats


def export_stats_json(stats: dict, dest_path: Union[str, Path]) -> None:
    with open(dest_path, "w", encoding="utf-8") as f:
        json.dump(stats, f, indent=2)


def parse_ts(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


@lru_cache(maxsize=1)
def report_tz() -> tzinfo:
    """Farm-local zone for report timestamps; UTC when no tz database is available."""
    try:
        return ZoneInfo(REPORT_TIMEZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Time zone %s not available, report times use UTC", REPORT_TIMEZONE)
        return timezone.utc


def format_date(ts: Union[str, datetime], tz: Optional[tzinfo] = None) -> str:
    dt = parse_ts(ts) if isinstance(ts, str) else ts
    return dt.astimezone(tz or report_tz()).strftime("%m/%d/%y")


def format_time(ts: Union[str, datetime], tz: Optional[tzinfo] = None) -> str:
    dt = parse_ts(ts) if isinstance(ts, str) else ts
    return dt.astimezone(tz or report_tz()).strftime("%I:%M %p")


def resolve_report_range(
    kind: str,
    now: Optional[datetime] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Tuple[datetime, datetime, str]:
    """
    Return ``(from, to, period_text)`` for a report range.

    ``today`` and ``this_month`` end at ``now``; ``yesterday`` and ``custom``
    cover whole days.
    """
    now = now or datetime.now().astimezone()
    midnight = datetime.combine(now.date(), dtime.min, tzinfo=now.tzinfo)
    if kind == "today":
        return midnight, now, "Today"
    if kind == "yesterday":
        day = midnight - timedelta(days=1)
        return day, datetime.combine(day.date(), dtime.max, tzinfo=now.tzinfo), "Yesterday"
    if kind == "this_month":
        first = midnight.replace(day=1)
        return first, now, f"This Month ({first.strftime('%B %Y')})"
    if kind == "custom":
        if start is None or end is None:
            raise ValueError("Custom report range needs both start and end dates")
        tz = now.tzinfo
        lo = datetime.combine(start.date(), dtime.min, tzinfo=start.tzinfo or tz)
        hi = datetime.combine(end.date(), dtime.max, tzinfo=end.tzinfo or tz)
        if hi < lo:
            raise ValueError("Report end date is before start date")
        return lo, hi, f"{format_date(lo)} - {format_date(hi)}"
    raise ValueError(f"Unknown report range: {kind!r} (expected one of {', '.join(REPORT_RANGES)})")


def _fmt(v: Optional[float], digits: int) -> str:
    return "-" if v is None else f"{v:.{digits}f}"


def reading_table_row(row: ReadingRow) -> Sequence[str]:
    gas = f"{row.gas_res_ohm / 1000:.1f}" if row.gas_res_ohm else "-"
    return (format_date(row.ts), format_time(row.ts), _fmt(row.temp_c, 2), _fmt(row.humidity_rh, 1), gas)


SUMMARY_LOOKBACK = timedelta(days=7)
SUMMARY_HISTORY_WINDOW = timedelta(hours=1.2)
SUMMARY_HISTORY_POINTS = 30


@dataclass
class ReadingsSummary:
    """Newest reading plus short oldest-first histories for the dashboard cards."""
    latest: ReadingRow
    temperature: List[float] = field(default_factory=list)
    humidity: List[float] = field(default_factory=list)
    ammonia_kohm: List[float] = field(default_factory=list)

    @property
    def ammonia_now(self) -> Optional[float]:
        gas = self.latest.gas_res_ohm
        return None if gas is None else gas / 1000


def downsample(values: Sequence[float], max_points: int = SUMMARY_HISTORY_POINTS) -> List[float]:
    """Keep every n-th value so at most ``max_points`` remain."""
    values = list(values)
    if len(values) <= max_points:
        return values
    step = -(-len(values) // max_points)
    return values[::step]


def latest_readings_summary(
    rows: Sequence[ReadingRow],
    window: timedelta = SUMMARY_HISTORY_WINDOW,
    max_points: int = SUMMARY_HISTORY_POINTS,
) -> Optional[ReadingsSummary]:
    """
    Summarize a block of readings for the live dashboard.

    The newest reading is reported as-is. The histories cover ``window``
    before that reading (not before now), oldest first, with missing values
    as 0, downsampled to ``max_points``.
    """
    dated = []
    for r in rows:
        try:
            dated.append((parse_ts(r.ts), r))
        except (TypeError, ValueError):
            logger.debug("Skipping reading %s with bad timestamp %r", r.id, r.ts)
    if not dated:
        return None
    dated.sort(key=lambda pair: pair[0], reverse=True)
    newest_ts, latest = dated[0]
    recent = [r for ts, r in reversed(dated) if ts >= newest_ts - window]
    return ReadingsSummary(
        latest=latest,
        temperature=downsample([r.t_avg_c or 0.0 for r in recent], max_points),
        humidity=downsample([r.humidity_rh or 0.0 for r in recent], max_points),
        ammonia_kohm=downsample([(r.gas_res_ohm or 0.0) / 1000 for r in recent], max_points),
    )


def write_readings_pdf(
    rows: Sequence[ReadingRow],
    period_text: str,
    pdf_path: Union[str, Path],
    thumbs: Optional[Sequence[Image.Image]] = None,
    title: str = "SwineTrack History Report",
) -> None:
    """
    Generate a readings history report with ReportLab.
    """
    try:
        from reportlab.lib import colors  # type: ignore
        from reportlab.lib.pagesizes import A4  # type: ignore
        from reportlab.lib.utils import ImageReader  # type: ignore
        from reportlab.pdfgen import canvas  # type: ignore
    except Exception as e:
        raise RuntimeError("ReportLab is required for PDF export but not installed.") from e

    c = canvas.Canvas(str(pdf_path), pagesize=A4)
    width, height = A4
    theme = colors.HexColor(THEME_COLOR)
    headers = REPORT_HEADERS
    col_w = (width - 80) / len(headers)

    # Header
    c.setFont("Helvetica-Bold", 16)
    c.setFillColor(theme)
    c.drawCentredString(width / 2, height - 50, title)
    c.setFillColor(colors.grey)
    c.setFont("Helvetica", 9)
    c.drawCentredString(width / 2, height - 66, f"Exported on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    c.drawCentredString(width / 2, height - 78, f"Period: {period_text}")
    c.drawRightString(width - 40, height - 94, f"Total Records: {len(rows)}")

    def header_row(y: float) -> float:
        c.setFillColor(theme)
        c.rect(40, y - 4, width - 80, 16, stroke=0, fill=1)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 9)
        for i, h in enumerate(headers):
            c.drawCentredString(40 + col_w * (i + 0.5), y, h)
        return y - 16

    y = header_row(height - 116)
    c.setFont("Helvetica", 8)
    for n, row in enumerate(rows):
        if y < 50:
            c.showPage()
            y = header_row(height - 50)
            c.setFont("Helvetica", 8)
        if n % 2 == 1:
            c.setFillColor(colors.HexColor("#f2f2f2"))
            c.rect(40, y - 4, width - 80, 14, stroke=0, fill=1)
        c.setFillColor(colors.black)
        for i, cell in enumerate(reading_table_row(row)):
            c.drawCentredString(40 + col_w * (i + 0.5), y, cell)
        y -= 14

    # Snapshot thumbnails (optional), on their own page
    if thumbs:
        c.showPage()
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, height - 50, "Snapshots")
        x, y = 40, height - 80
        thumb_w = (width - 100) / 3
        for t in thumbs:
            iw, ih = t.size
            scale = min(thumb_w / iw, 110 / ih)
            if y - ih * scale < 40:
                c.showPage()
                x, y = 40, height - 50
            c.drawImage(ImageReader(t), x, y - ih * scale, iw * scale, ih * scale)
            x += thumb_w + 10
            if x > width - thumb_w:
                x = 40
                y -= 120

    c.showPage()
    c.save()
