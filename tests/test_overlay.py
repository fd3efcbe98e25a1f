import pytest
from PIL import Image

from swinetrack.overlay import (
    BLACK,
    WHITE,
    CellPrimitive,
    LinePrimitive,
    TextPrimitive,
    composite_image,
    crosshair_lines,
    format_max_label,
    render_payload,
)
from swinetrack.payload import ThermalPayload, normalize_payload
from swinetrack.processing import RendererParams

FAST = RendererParams(overlay_opacity=0.5, interpolation_factor=1.0)


def test_crosshair_two_tone():
    lines = crosshair_lines(5, 5)
    assert len(lines) == 8
    assert all(l.color == BLACK and l.width == 0.3 and l.opacity == 0.8 for l in lines[:4])
    assert all(l.color == WHITE and l.width == 0.15 and l.opacity == 1.0 for l in lines[4:])
    left = lines[0]
    assert left.x1 == pytest.approx(2.9)
    assert left.x2 == pytest.approx(4.4)
    assert left.y1 == left.y2 == 5.5


def test_max_label_format():
    assert format_max_label(36.04) == "Max: 36.0°C"


def test_render_with_hotspot(hot_payload):
    render = render_payload(hot_payload, FAST)
    desc = render.descriptor
    assert render.analysis.hotspot == (16, 12)
    assert render.analysis.t_max == 40.0
    assert len(desc.cells) == 32 * 24
    assert desc.opacity == 0.5
    assert len(desc.crosshair) == 8
    assert desc.label == TextPrimitive("Max: 40.0°C")
    hot_cell = desc.cells[12 * 32 + 16]
    assert hot_cell == CellPrimitive(16, 12, (255, 255, 0))


def test_draw_order(hot_payload):
    prims = list(render_payload(hot_payload, FAST).descriptor)
    assert len(prims) == 32 * 24 + 8 + 1
    assert isinstance(prims[0], CellPrimitive)
    assert isinstance(prims[32 * 24], LinePrimitive)
    assert isinstance(prims[-1], TextPrimitive)


def test_default_params_upscale(hot_payload):
    render = render_payload(hot_payload)
    assert (render.descriptor.width, render.descriptor.height) == (64, 48)
    assert len(render.descriptor.cells) == 64 * 48
    assert render.descriptor.opacity == 0.7


def test_empty_payload_renders_nothing():
    render = render_payload(ThermalPayload())
    assert render.descriptor.is_empty
    assert render.descriptor.crosshair == []
    assert render.descriptor.label is None
    assert (render.analysis.t_min, render.analysis.t_max) == (0.0, 0.0)


def test_two_by_two_end_to_end():
    payload = normalize_payload({"w": 2, "h": 2, "data": [10, 20, 30, 40]})
    render = render_payload(payload, RendererParams(interpolation_factor=1.0, calibration_offset=0.0))
    assert render.grid.values.tolist() == [10.0, 20.0, 30.0, 40.0]
    assert render.analysis.hotspot is None
    assert render.analysis.t_max == 0.0
    assert render.analysis.t_min == 10.0
    assert len(render.descriptor.cells) == 4
    assert render.descriptor.label is None


def test_composite_blends_cells(payload_factory):
    payload = payload_factory(width=4, height=3, fill=0.0)
    base = Image.new("RGB", (40, 30), (255, 0, 0))

    opaque = render_payload(payload, RendererParams(overlay_opacity=1.0, interpolation_factor=1.0))
    out = composite_image(opaque.descriptor, base)
    assert out.size == (40, 30)
    assert out.getpixel((20, 15)) == (0, 0, 255)

    clear = render_payload(payload, RendererParams(overlay_opacity=0.0, interpolation_factor=1.0))
    assert composite_image(clear.descriptor, base).getpixel((20, 15)) == (255, 0, 0)


def test_composite_without_cells_returns_base():
    base = Image.new("RGB", (20, 10), (1, 2, 3))
    out = composite_image(render_payload(ThermalPayload()).descriptor, base)
    assert out.size == (20, 10)
    assert out.getpixel((5, 5)) == (1, 2, 3)


def test_composite_with_hotspot_and_label(hot_payload):
    out = composite_image(render_payload(hot_payload, FAST).descriptor, size=(320, 240))
    assert out.mode == "RGB"
    assert out.size == (320, 240)
