# payload.py
"""
Thermal payload normalization.

A payload arrives either as a one-shot JSON document (snapshots) or as a
server-sent event message (live feed). Both shapes are folded into a single
``ThermalPayload`` here so downstream stages never branch on field names.

Malformed input never raises: missing dimensions fall back to the MLX90640
default of 32x24 and a missing or non-list sample array becomes empty.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 32
DEFAULT_HEIGHT = 24
SAMPLE_KEYS = ("data", "pixelData")

# Strict JSON rejects these tokens; devices emit them for dead pixels.
_NON_FINITE_TOKEN = re.compile(r"([:\[,]\s*)(-?Infinity|NaN)\b")


@dataclass
class ThermalPayload:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    samples: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    # Advisory device summary values; rendering recomputes its own range.
    t_min: Optional[float] = None
    t_max: Optional[float] = None
    t_avg: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return self.samples.size >= self.width * self.height > 0


def _dimension(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        v = int(value)
    except (TypeError, ValueError):
        return default
    return v if v > 0 else default


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        return float("nan")
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def coerce_samples(raw: Any) -> np.ndarray:
    """Return a float64 vector for list-shaped input, empty otherwise."""
    if not isinstance(raw, (list, tuple, np.ndarray)):
        return np.empty(0, dtype=np.float64)
    try:
        return np.asarray(raw, dtype=np.float64).ravel()
    except (TypeError, ValueError):
        # Mixed content: convert element-wise, junk becomes NaN
        return np.array([_to_float(v) for v in raw], dtype=np.float64)


def normalize_payload(obj: Any) -> ThermalPayload:
    """
    Fold a raw payload mapping into a well-formed ``ThermalPayload``.

    Accepts ``w``/``h`` or ``width``/``height`` and either ``data`` or
    ``pixelData`` for the sample array.
    """
    if not isinstance(obj, Mapping):
        return ThermalPayload()

    width = _dimension(obj.get("w", obj.get("width")), DEFAULT_WIDTH)
    height = _dimension(obj.get("h", obj.get("height")), DEFAULT_HEIGHT)

    raw = None
    for key in SAMPLE_KEYS:
        if obj.get(key) is not None:
            raw = obj.get(key)
            break

    return ThermalPayload(
        width=width,
        height=height,
        samples=coerce_samples(raw),
        t_min=_optional_float(obj.get("tMin")),
        t_max=_optional_float(obj.get("tMax")),
        t_avg=_optional_float(obj.get("tAvg")),
    )


def sanitize_json_text(text: str) -> str:
    """Replace NaN / Infinity / -Infinity value tokens with 0."""
    return _NON_FINITE_TOKEN.sub(r"\g<1>0", text)


def unwrap_message(parsed: Any) -> Optional[ThermalPayload]:
    """
    Normalize a decoded live-shape document.

    Two shapes are understood::

        {"thermal": {"w": 32, "h": 24, "data": [...]}, "tMin": .., "tMax": .., "tAvg": ..}
        {"thermal": [...], "tMin": .., "tMax": .., "tAvg": ..}   # legacy, 32x24

    Returns None for an unknown shape.
    """
    if not isinstance(parsed, Mapping):
        return None
    thermal = parsed.get("thermal")
    summary = {k: parsed.get(k) for k in ("tMin", "tMax", "tAvg")}
    if isinstance(thermal, Mapping) and isinstance(thermal.get("data"), list):
        return normalize_payload({"w": thermal.get("w"), "h": thermal.get("h"), "data": thermal["data"], **summary})
    if isinstance(thermal, list):
        return normalize_payload({"w": DEFAULT_WIDTH, "h": DEFAULT_HEIGHT, "data": thermal, **summary})
    return None


def parse_live_message(text: str) -> Optional[ThermalPayload]:
    """
    Parse one live-feed message (see ``unwrap_message`` for the shapes).

    Returns None for undecodable text or an unknown shape.
    """
    try:
        parsed = json.loads(sanitize_json_text(text))
    except (TypeError, ValueError) as ex:
        logger.error("Live payload parse error: %s", ex)
        logger.debug("Raw payload causing error: %r", text)
        return None
    return unwrap_message(parsed)


def parse_snapshot_payload(obj: Any) -> ThermalPayload:
    """
    Snapshot documents come in the live message shapes or the flat
    ``{w, h, data|pixelData}`` shape.
    """
    if isinstance(obj, (str, bytes)):
        try:
            text = obj.decode("utf-8") if isinstance(obj, bytes) else obj
            obj = json.loads(sanitize_json_text(text))
        except (UnicodeDecodeError, ValueError) as ex:
            logger.error("Snapshot payload parse error: %s", ex)
            return ThermalPayload()
    if isinstance(obj, Mapping) and "thermal" in obj:
        payload = unwrap_message(obj)
        if payload is None:
            logger.error("Snapshot payload has an unknown thermal shape")
            return ThermalPayload()
        return payload
    return normalize_payload(obj)
