from swinetrack.config import AppConfig


def test_from_env(monkeypatch):
    monkeypatch.setenv("SWINETRACK_BACKEND_URL", "https://demo.backend.example")
    monkeypatch.setenv("SWINETRACK_ANON_KEY", "anon")
    monkeypatch.setenv("SWINETRACK_DEVICE_ID", "pen-07")
    monkeypatch.setenv("SWINETRACK_OVERLAY_OPACITY", "1.8")
    monkeypatch.setenv("SWINETRACK_INTERPOLATION", "3")
    monkeypatch.setenv("SWINETRACK_CALIBRATION_OFFSET", "-1.5")
    monkeypatch.setenv("SWINETRACK_HTTP_TIMEOUT", "not-a-number")
    cfg = AppConfig.from_env()
    assert cfg.device_id == "pen-07"
    assert cfg.live_params.overlay_opacity == 1.0
    assert cfg.live_params.interpolation_factor == 3.0
    assert cfg.list_params.interpolation_factor == 1.0
    assert cfg.list_params.calibration_offset == -1.5
    assert cfg.http_timeout == 15.0
    backend = cfg.backend()
    assert backend.configured
    assert backend.timeout == 15.0


def test_defaults(monkeypatch):
    for name in ("SWINETRACK_BACKEND_URL", "SWINETRACK_ANON_KEY", "SWINETRACK_STREAM_URL", "SWINETRACK_LOG_PATH"):
        monkeypatch.delenv(name, raising=False)
    cfg = AppConfig.from_env()
    assert cfg.stream_url == ""
    assert cfg.log_path is None
    assert not cfg.backend().configured
    assert cfg.reconnect_delay == 3.0
