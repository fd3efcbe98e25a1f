# processing.py
"""
Core numerical pipeline for SwineTrack thermal overlays.

This module provides:
- Calibration offset of raw sensor samples
- Two-pass 3x3 box smoothing that ignores non-finite pixels
- Bilinear upscaling of the low resolution sensor grid
- Min/max search with an edge margin for the hottest-point crosshair
- Blue -> green -> red color mapping (scalar and vectorized)

Every stage is a pure function of its input. An ``interpolation_factor`` of 1
skips smoothing and upscaling entirely; list views rendering many thumbnails
rely on that path.

Dependencies: NumPy.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

EPSILON = 1e-6
HOTSPOT_MARGIN_CELLS = 3
SMOOTHING_PASSES = 2

RGB = Tuple[int, int, int]


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positive values (display rounding)."""
    return int(math.floor(x + 0.5))


@dataclass
class RendererParams:
    overlay_opacity: float = 0.7  # 0..1
    interpolation_factor: float = 2.0  # >= 1; 1 = performance mode
    calibration_offset: float = 0.0  # added to every sample, degrees C

    def clamped(self) -> "RendererParams":
        factor = float(self.interpolation_factor)
        if not math.isfinite(factor):
            factor = 1.0
        offset = float(self.calibration_offset)
        return RendererParams(
            overlay_opacity=float(np.clip(self.overlay_opacity, 0.0, 1.0)),
            interpolation_factor=max(1.0, factor),
            calibration_offset=offset if math.isfinite(offset) else 0.0,
        )


# Thumbnails in long lists skip smoothing/interpolation.
LIST_PARAMS = RendererParams(interpolation_factor=1.0)


@dataclass
class ProcessedGrid:
    display_width: int
    display_height: int
    values: np.ndarray  # float64, flat, row-major

    @property
    def size(self) -> int:
        return int(self.values.size)

    def as_2d(self) -> np.ndarray:
        return self.values.reshape(self.display_height, self.display_width)


@dataclass
class AnalysisResult:
    t_min: float
    t_max: float
    hotspot: Optional[Tuple[int, int]]  # (x, y) in display-grid cells


def smooth_grid(arr: np.ndarray) -> np.ndarray:
    """
    One pass of a 3x3 box average, clamped at the borders.

    Non-finite cells are left out of each neighborhood; a cell whose whole
    neighborhood is non-finite keeps its original value.
    """
    h, w = arr.shape
    finite = np.isfinite(arr)
    padded_vals = np.pad(np.where(finite, arr, 0.0), 1)
    padded_count = np.pad(finite.astype(np.float64), 1)

    total = np.zeros((h, w), dtype=np.float64)
    count = np.zeros((h, w), dtype=np.float64)
    for dy in range(3):
        for dx in range(3):
            total += padded_vals[dy : dy + h, dx : dx + w]
            count += padded_count[dy : dy + h, dx : dx + w]

    out = arr.astype(np.float64, copy=True)
    np.divide(total, count, out=out, where=count > 0)
    return out


def _source_axis(source: int, target: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    ratio = (source - 1) / (target - 1) if target > 1 else 0.0
    pos = np.arange(target, dtype=np.float64) * ratio
    lo = np.floor(pos).astype(np.int64)
    weight = pos - lo
    lo = np.clip(lo, 0, source - 1)
    hi = np.clip(lo + 1, 0, source - 1)
    return lo, hi, weight


def interpolate_bilinear(arr: np.ndarray, target_w: int, target_h: int) -> np.ndarray:
    """
    Resize ``arr`` (HxW) to ``target_h x target_w`` with bilinear weights.

    Target cell (x, y) samples source coordinate ``x * (W-1)/(target_w-1)``;
    a single-cell target axis uses a ratio of 0.
    """
    h, w = arr.shape
    x1, x2, wx = _source_axis(w, target_w)
    y1, y2, wy = _source_axis(h, target_h)
    wx = wx[None, :]
    wy = wy[:, None]

    v11 = arr[np.ix_(y1, x1)]
    v12 = arr[np.ix_(y1, x2)]
    v21 = arr[np.ix_(y2, x1)]
    v22 = arr[np.ix_(y2, x2)]
    return (
        v11 * (1 - wx) * (1 - wy)
        + v12 * wx * (1 - wy)
        + v21 * (1 - wx) * wy
        + v22 * wx * wy
    )


def display_size(width: int, height: int, interpolation_factor: float) -> Tuple[int, int]:
    if interpolation_factor <= 1:
        return width, height
    return round_half_up(width * interpolation_factor), round_half_up(height * interpolation_factor)


def process_samples(
    samples: Union[np.ndarray, Sequence[float]],
    width: int,
    height: int,
    calibration_offset: float = 0.0,
    interpolation_factor: float = 2.0,
) -> ProcessedGrid:
    """
    Offset, smooth and upscale a flat row-major sample vector.

    An empty or short vector yields an empty grid so callers render nothing.
    """
    arr = np.asarray(samples, dtype=np.float64).ravel()
    n = width * height
    if width <= 0 or height <= 0 or arr.size < n or n == 0:
        return ProcessedGrid(display_width=0, display_height=0, values=np.empty(0, dtype=np.float64))

    corrected = arr[:n] + calibration_offset
    if interpolation_factor <= 1:
        return ProcessedGrid(display_width=width, display_height=height, values=corrected)

    grid = corrected.reshape(height, width)
    for _ in range(SMOOTHING_PASSES):
        grid = smooth_grid(grid)

    dw, dh = display_size(width, height, interpolation_factor)
    if dw <= 0 or dh <= 0:
        return ProcessedGrid(display_width=0, display_height=0, values=np.empty(0, dtype=np.float64))
    upscaled = interpolate_bilinear(grid, dw, dh)
    return ProcessedGrid(display_width=dw, display_height=dh, values=upscaled.ravel())


def hotspot_margin(interpolation_factor: float) -> int:
    return round_half_up(HOTSPOT_MARGIN_CELLS * max(1.0, interpolation_factor))


def analyze_grid(grid: ProcessedGrid, interpolation_factor: float) -> AnalysisResult:
    """
    Compute the display range and the hottest interior point.

    The minimum covers every finite cell. The maximum and the hotspot are
    taken only from cells strictly inside the margin band, so an edge outlier
    never raises the reported maximum. Without a finite value the range falls
    back to 0; without an interior cell ``t_max`` is 0 and there is no hotspot.
    """
    if grid.size == 0:
        return AnalysisResult(t_min=0.0, t_max=0.0, hotspot=None)

    values = grid.as_2d()
    h, w = values.shape
    finite = np.isfinite(values)
    t_min = float(np.min(values[finite])) if finite.any() else 0.0

    margin = hotspot_margin(interpolation_factor)
    xs = np.arange(w)
    ys = np.arange(h)
    band = ((ys > margin) & (ys < h - margin))[:, None] & ((xs > margin) & (xs < w - margin))[None, :]
    candidates = band & finite
    if not candidates.any():
        return AnalysisResult(t_min=t_min, t_max=0.0, hotspot=None)

    masked = np.where(candidates, values, -np.inf)
    # argmax returns the first occurrence, matching a strict ">" row-major scan
    idx = int(np.argmax(masked))
    hy, hx = divmod(idx, w)
    return AnalysisResult(t_min=t_min, t_max=float(values[hy, hx]), hotspot=(hx, hy))


def normalise(v: float, t_min: float, t_max: float) -> float:
    span = t_max - t_min + EPSILON
    # t_max can sit below t_min when no cell is inside the margin band
    if span == 0.0:
        return 0.0
    t = (v - t_min) / span
    if not math.isfinite(t):
        return 0.0 if math.isnan(t) else float(t > 0)
    return min(1.0, max(0.0, t))


def _channel(x: float) -> int:
    return round_half_up(255 * min(1.0, max(0.0, x)))


def color_of(v: float, t_min: float, t_max: float) -> RGB:
    """Map a temperature to the blue -> green -> red ramp."""
    t = normalise(v, t_min, t_max)
    return _channel(1.7 * t), _channel(t * t), _channel((1 - t) * (1 - t))


def colorize(values: np.ndarray, t_min: float, t_max: float) -> np.ndarray:
    """Vectorized ``color_of``; returns uint8 RGB with a trailing channel axis."""
    values = np.asarray(values, dtype=np.float64)
    span = t_max - t_min + EPSILON
    if span == 0.0:
        t = np.zeros_like(values)
    else:
        with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
            t = (values - t_min) / span
    t = np.clip(np.nan_to_num(t, nan=0.0, posinf=1.0, neginf=0.0), 0.0, 1.0)
    r = np.clip(1.7 * t, 0.0, 1.0)
    g = np.clip(t * t, 0.0, 1.0)
    b = np.clip((1 - t) * (1 - t), 0.0, 1.0)
    rgb = np.floor(np.stack([r, g, b], axis=-1) * 255.0 + 0.5)
    return rgb.astype(np.uint8)
