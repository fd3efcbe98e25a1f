import math

import numpy as np

from swinetrack.overlay import render_payload
from swinetrack.payload import (
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    ThermalPayload,
    coerce_samples,
    normalize_payload,
    parse_live_message,
    parse_snapshot_payload,
    sanitize_json_text,
)
from swinetrack.processing import RendererParams


def test_missing_fields_fall_back_to_defaults():
    p = normalize_payload({})
    assert (p.width, p.height) == (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    assert p.samples.size == 0
    assert not p.is_complete


def test_alternate_field_names():
    p = normalize_payload({"width": 2, "height": 2, "pixelData": [1, 2, 3, 4], "tMin": 1, "tAvg": "2.5"})
    assert (p.width, p.height) == (2, 2)
    assert p.samples.tolist() == [1.0, 2.0, 3.0, 4.0]
    assert p.t_min == 1.0
    assert p.t_avg == 2.5
    assert p.t_max is None
    assert p.is_complete


def test_invalid_dimensions_use_defaults():
    p = normalize_payload({"w": 0, "h": "tall", "data": []})
    assert (p.width, p.height) == (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    assert normalize_payload({"w": True, "h": -4}).width == DEFAULT_WIDTH


def test_non_list_samples_become_empty():
    assert normalize_payload({"data": "1,2,3"}).samples.size == 0
    assert normalize_payload(None).samples.size == 0


def test_mixed_samples_become_nan():
    arr = coerce_samples([1, "x", None, 2.5])
    assert arr[0] == 1.0
    assert math.isnan(arr[1]) and math.isnan(arr[2])
    assert arr[3] == 2.5


def test_sanitize_replaces_non_finite_tokens():
    text = '{"a": NaN, "b": [1, -Infinity, Infinity], "c": "NaN"}'
    assert sanitize_json_text(text) == '{"a": 0, "b": [1, 0, 0], "c": "NaN"}'


def test_live_message_nested_shape():
    p = parse_live_message('{"thermal": {"w": 2, "h": 1, "data": [1.5, NaN]}, "tMax": 3}')
    assert isinstance(p, ThermalPayload)
    assert (p.width, p.height) == (2, 1)
    assert p.samples.tolist() == [1.5, 0.0]
    assert p.t_max == 3.0


def test_live_message_legacy_shape_is_32x24():
    p = parse_live_message('{"thermal": [1, 2, 3], "tAvg": 2}')
    assert (p.width, p.height) == (32, 24)
    assert p.samples.size == 3
    assert not p.is_complete


def test_live_message_rejects_garbage():
    assert parse_live_message("not json") is None
    assert parse_live_message('{"other": 1}') is None
    assert parse_live_message("[1, 2]") is None
    assert parse_live_message('{"thermal": {"w": 2}}') is None


def test_snapshot_payload_from_bytes():
    p = parse_snapshot_payload(b'{"w": 2, "h": 2, "data": [1, 2, 3, Infinity]}')
    assert p.is_complete
    np.testing.assert_array_equal(p.samples, [1.0, 2.0, 3.0, 0.0])


def test_snapshot_payload_undecodable_is_empty():
    p = parse_snapshot_payload(b"\xff\xfe")
    assert p.samples.size == 0
    assert parse_snapshot_payload("{broken").samples.size == 0


def test_snapshot_payload_accepts_live_shapes():
    nested = parse_snapshot_payload(b'{"thermal": {"w": 2, "h": 2, "data": [10, 20, 30, 40]}, "tMin": 10, "tMax": 40}')
    assert (nested.width, nested.height) == (2, 2)
    assert nested.is_complete
    assert nested.t_max == 40.0

    legacy = parse_snapshot_payload({"thermal": [1.0] * (DEFAULT_WIDTH * DEFAULT_HEIGHT), "tAvg": 1.0})
    assert (legacy.width, legacy.height) == (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    assert legacy.is_complete

    assert parse_snapshot_payload('{"thermal": {"w": 2}}').samples.size == 0


def test_snapshot_in_live_shape_renders_every_cell():
    payload = parse_snapshot_payload(b'{"thermal": {"w": 2, "h": 2, "data": [10, 20, 30, NaN]}, "tAvg": 20}')
    render = render_payload(payload, RendererParams(interpolation_factor=1.0))
    assert len(render.descriptor.cells) == 4
