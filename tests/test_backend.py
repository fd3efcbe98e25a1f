from datetime import datetime, timezone
from unittest import mock

import pytest
import requests

from swinetrack.backend import (
    AlertRow,
    BackendClient,
    BackendConfig,
    BackendError,
    ReadingRow,
    thermal_path_for,
    with_cache_buster,
)

BASE = "https://demo.backend.example"


@pytest.fixture
def session():
    s = mock.MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    return BackendClient(BackendConfig(url=BASE + "/", anon_key="anon-key", timeout=5.0), session=session)


def _ok(rows):
    resp = mock.MagicMock()
    resp.ok = True
    resp.status_code = 200
    resp.json.return_value = rows
    return resp


def test_auth_headers(client, session):
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"


def test_list_alerts_query(client, session):
    session.get.return_value = _ok([
        {"id": 1, "ts": "2025-01-01T00:00:00Z", "alert_type": "ammonia", "message": "High", "extra": "x"},
    ])
    alerts = client.list_alerts("pen-01", page=2, page_size=10)
    assert alerts == [AlertRow(id=1, ts="2025-01-01T00:00:00Z", alert_type="ammonia", message="High")]
    args, kwargs = session.get.call_args
    assert args[0] == f"{BASE}/rest/v1/alerts"
    params = kwargs["params"]
    assert ("device_id", "eq.pen-01") in params
    assert ("order", "ts.desc") in params
    assert ("offset", "20") in params and ("limit", "10") in params
    assert kwargs["timeout"] == 5.0


def test_fetch_readings_range_filters(client, session):
    session.get.return_value = _ok([{"id": 3, "ts": "2025-01-01T00:00:00Z", "temp_c": 24.5, "gas_res_ohm": 12000}])
    lo = datetime(2025, 1, 1, tzinfo=timezone.utc)
    hi = datetime(2025, 1, 2, tzinfo=timezone.utc)
    rows = client.fetch_readings_range("pen-01", lo, hi)
    assert rows == [ReadingRow(id=3, ts="2025-01-01T00:00:00Z", temp_c=24.5, gas_res_ohm=12000)]
    params = session.get.call_args[1]["params"]
    assert ("ts", f"gte.{lo.isoformat()}") in params
    assert ("ts", f"lte.{hi.isoformat()}") in params
    assert ("limit", "15000") in params
    select = dict(params)["select"]
    assert select.split(",")[0] == "id" and "t_avg_c" in select


def test_list_snapshots_builds_public_urls(client, session):
    session.get.return_value = _ok([
        {"id": 1, "ts": "t", "device_id": "pen-01", "overlay_path": "pen-01/2025/a.jpg", "reading": {"temp_c": 30.0}},
        {"id": 2, "ts": "t", "device_id": "pen-01", "overlay_path": None},
    ])
    rows = client.list_snapshots("pen-01")
    assert rows[0].image_url == f"{BASE}/storage/v1/object/public/snapshots/pen-01/2025/a.jpg"
    assert rows[0].thermal_url == f"{BASE}/storage/v1/object/public/snapshots/pen-01/2025/a.json"
    assert rows[0].reading == {"temp_c": 30.0}
    assert rows[1].image_url is None and rows[1].thermal_url is None
    select = dict(session.get.call_args[1]["params"])["select"]
    assert "reading:readings(temp_c,humidity_rh," in select


def test_error_status_raises(client, session):
    resp = _ok([])
    resp.ok = False
    resp.status_code = 500
    resp.text = "server error"
    session.get.return_value = resp
    with pytest.raises(BackendError) as ei:
        client.list_alerts("pen-01")
    assert ei.value.status == 500


def test_network_failure_raises(client, session):
    session.get.side_effect = requests.ConnectionError("offline")
    with pytest.raises(BackendError):
        client.fetch_readings("pen-01", "a", "b")


def test_connection_check(client, session):
    session.get.return_value = _ok([])
    assert client.test_connection("pen-01") is True
    session.get.side_effect = requests.Timeout("slow")
    assert client.test_connection() is False


def test_live_frame_urls_share_cache_buster(client):
    frame, thermal = client.live_frame_urls("pen-01")
    assert frame.startswith(f"{BASE}/storage/v1/object/public/frames-live/pen-01/current.jpg?cb=")
    assert thermal.startswith(f"{BASE}/storage/v1/object/public/frames-live/pen-01/current.json?cb=")
    assert frame.split("cb=")[1] == thermal.split("cb=")[1]


def test_url_helpers():
    assert with_cache_buster("http://a/b?x=1", 5) == "http://a/b?x=1&cb=5"
    assert with_cache_buster("http://a/b", 5) == "http://a/b?cb=5"
    assert thermal_path_for("a/b.JPG") == "a/b.json"
    assert not BackendConfig(url="", anon_key="").configured
