# overlay.py
"""
Overlay composition for thermal frames.

The overlay is described as a flat, ordered drawing list (``RenderDescriptor``)
in display-grid units: one colored cell per grid position, an optional
two-tone crosshair at the hotspot and a max-temperature label. A backend
draws it imperatively; ``composite_image`` is the Pillow backend used for
exports and reports, ``gui.paint_descriptor`` the Qt one.

Dependencies: Pillow, NumPy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, NamedTuple, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .payload import ThermalPayload
from .processing import (
    RGB,
    AnalysisResult,
    ProcessedGrid,
    RendererParams,
    analyze_grid,
    colorize,
    process_samples,
)

logger = logging.getLogger(__name__)

# Cells overlap slightly so anti-aliased edges do not leave seams.
CELL_SIZE = 1.1

CROSSHAIR_GAP = 0.6
CROSSHAIR_LENGTH = 1.5
OUTLINE_WIDTH = 0.3
OUTLINE_OPACITY = 0.8
FILL_WIDTH = 0.15

BLACK: RGB = (0, 0, 0)
WHITE: RGB = (255, 255, 255)
LABEL_BACKGROUND = (0, 0, 0, 153)
UNIT_SUFFIX = "°C"


class CellPrimitive(NamedTuple):
    x: int
    y: int
    color: RGB
    size: float = CELL_SIZE


class LinePrimitive(NamedTuple):
    x1: float
    y1: float
    x2: float
    y2: float
    color: RGB
    width: float
    opacity: float = 1.0


class TextPrimitive(NamedTuple):
    text: str
    anchor: str = "top-right"
    color: RGB = WHITE


Primitive = Union[CellPrimitive, LinePrimitive, TextPrimitive]


@dataclass
class RenderDescriptor:
    width: int  # display-grid cells
    height: int
    opacity: float = 0.7  # applies to the cell layer only
    cells: List[CellPrimitive] = field(default_factory=list)
    crosshair: List[LinePrimitive] = field(default_factory=list)
    label: Optional[TextPrimitive] = None

    def __iter__(self) -> Iterator[Primitive]:
        """Yield primitives in draw order."""
        yield from self.cells
        yield from self.crosshair
        if self.label is not None:
            yield self.label

    @property
    def is_empty(self) -> bool:
        return not self.cells


@dataclass
class ThermalRender:
    grid: ProcessedGrid
    analysis: AnalysisResult
    descriptor: RenderDescriptor


def crosshair_lines(hx: int, hy: int) -> List[LinePrimitive]:
    """Four ticks around cell (hx, hy), black outline first then white fill."""
    cx, cy = hx + 0.5, hy + 0.5
    reach = CROSSHAIR_GAP + CROSSHAIR_LENGTH
    ticks = [
        (hx - reach, cy, hx - CROSSHAIR_GAP, cy),
        (hx + 1 + CROSSHAIR_GAP, cy, hx + 1 + reach, cy),
        (cx, hy - reach, cx, hy - CROSSHAIR_GAP),
        (cx, hy + 1 + CROSSHAIR_GAP, cx, hy + 1 + reach),
    ]
    lines = [LinePrimitive(*t, color=BLACK, width=OUTLINE_WIDTH, opacity=OUTLINE_OPACITY) for t in ticks]
    lines += [LinePrimitive(*t, color=WHITE, width=FILL_WIDTH) for t in ticks]
    return lines


def format_max_label(t_max: float) -> str:
    return f"Max: {t_max:.1f}{UNIT_SUFFIX}"


def build_descriptor(grid: ProcessedGrid, analysis: AnalysisResult, params: RendererParams) -> RenderDescriptor:
    p = params.clamped()
    desc = RenderDescriptor(width=grid.display_width, height=grid.display_height, opacity=p.overlay_opacity)
    if grid.size == 0:
        return desc

    colors = colorize(grid.values, analysis.t_min, analysis.t_max)
    w = grid.display_width
    desc.cells = [
        CellPrimitive(i % w, i // w, (int(c[0]), int(c[1]), int(c[2])))
        for i, c in enumerate(colors)
    ]
    if analysis.hotspot is not None:
        hx, hy = analysis.hotspot
        desc.crosshair = crosshair_lines(hx, hy)
        desc.label = TextPrimitive(format_max_label(analysis.t_max))
    return desc


def render_payload(payload: ThermalPayload, params: Optional[RendererParams] = None) -> ThermalRender:
    """
    Full pipeline: process -> analyze -> colorize -> drawing list.
    """
    p = (params or RendererParams()).clamped()
    grid = process_samples(
        payload.samples,
        payload.width,
        payload.height,
        calibration_offset=p.calibration_offset,
        interpolation_factor=p.interpolation_factor,
    )
    analysis = analyze_grid(grid, p.interpolation_factor)
    descriptor = build_descriptor(grid, analysis, p)
    logger.debug(
        "Rendered %dx%d grid, range %.2f..%.2f, hotspot %s",
        grid.display_width, grid.display_height, analysis.t_min, analysis.t_max, analysis.hotspot,
    )
    return ThermalRender(grid=grid, analysis=analysis, descriptor=descriptor)


def _cell_layer(desc: RenderDescriptor) -> np.ndarray:
    arr = np.zeros((desc.height, desc.width, 3), dtype=np.uint8)
    for cell in desc.cells:
        arr[cell.y, cell.x] = cell.color
    return arr


def composite_image(
    desc: RenderDescriptor,
    base_image: Optional[Image.Image] = None,
    size: Optional[Tuple[int, int]] = None,
) -> Image.Image:
    """
    Rasterize a descriptor over ``base_image`` with Pillow.

    Without cells the (scaled) base image is returned unchanged.
    """
    if size is None:
        size = base_image.size if base_image is not None else (max(1, desc.width) * 10, max(1, desc.height) * 10)
    if base_image is not None:
        canvas = base_image.convert("RGB").resize(size, Image.BILINEAR)
    else:
        canvas = Image.new("RGB", size, BLACK)
    if desc.is_empty:
        return canvas

    layer = Image.fromarray(_cell_layer(desc), mode="RGB").resize(size, Image.NEAREST)
    alpha = float(np.clip(desc.opacity, 0.0, 1.0))
    blended = (alpha * np.array(layer, dtype=np.float32) + (1.0 - alpha) * np.array(canvas, dtype=np.float32))
    out = Image.fromarray(np.clip(blended, 0, 255).astype(np.uint8), mode="RGB").convert("RGBA")

    sx = size[0] / desc.width
    sy = size[1] / desc.height
    scale = min(sx, sy)
    marks = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(marks)
    for line in desc.crosshair:
        draw.line(
            [(line.x1 * sx, line.y1 * sy), (line.x2 * sx, line.y2 * sy)],
            fill=(*line.color, int(round(255 * line.opacity))),
            width=max(1, int(round(line.width * scale))),
        )
    out = Image.alpha_composite(out, marks)

    if desc.label is not None:
        out = _draw_label(out, desc.label)
    return out.convert("RGB")


def _draw_label(img: Image.Image, label: TextPrimitive) -> Image.Image:
    font = ImageFont.load_default()
    layer = Image.new("RGBA", img.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    left, top, right, bottom = draw.textbbox((0, 0), label.text, font=font)
    tw, th = right - left, bottom - top
    pad_x, pad_y, inset = 6, 3, 8
    x1 = img.size[0] - inset
    x0 = max(0, x1 - tw - 2 * pad_x)
    y0 = inset
    y1 = y0 + th + 2 * pad_y
    draw.rectangle([x0, y0, x1, y1], fill=LABEL_BACKGROUND)
    draw.text((x0 + pad_x - left, y0 + pad_y - top), label.text, font=font, fill=(*label.color, 255))
    return Image.alpha_composite(img, layer)
