"""
SwineTrack configuration.

Values come from the environment so the same build runs against any backend.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from .backend import BackendConfig
from .processing import RendererParams


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


@dataclass
class AppConfig:
    """Application configuration"""
    backend_url: str = ""
    anon_key: str = ""
    device_id: str = "pen-01"
    # Server-sent event endpoint of the on-site gateway
    stream_url: str = ""
    http_timeout: float = 15.0
    reconnect_delay: float = 3.0
    log_path: Optional[str] = None
    live_params: RendererParams = field(default_factory=RendererParams)
    list_params: RendererParams = field(default_factory=lambda: RendererParams(interpolation_factor=1.0))

    @classmethod
    def from_env(cls) -> "AppConfig":
        live = RendererParams(
            overlay_opacity=_float_env("SWINETRACK_OVERLAY_OPACITY", 0.7),
            interpolation_factor=_float_env("SWINETRACK_INTERPOLATION", 2.0),
            calibration_offset=_float_env("SWINETRACK_CALIBRATION_OFFSET", 0.0),
        ).clamped()
        return cls(
            backend_url=os.getenv("SWINETRACK_BACKEND_URL", ""),
            anon_key=os.getenv("SWINETRACK_ANON_KEY", ""),
            device_id=os.getenv("SWINETRACK_DEVICE_ID", "pen-01"),
            stream_url=os.getenv("SWINETRACK_STREAM_URL", ""),
            http_timeout=_float_env("SWINETRACK_HTTP_TIMEOUT", 15.0),
            reconnect_delay=_float_env("SWINETRACK_RECONNECT_DELAY", 3.0),
            log_path=os.getenv("SWINETRACK_LOG_PATH") or None,
            live_params=live,
            list_params=RendererParams(
                overlay_opacity=live.overlay_opacity,
                interpolation_factor=1.0,
                calibration_offset=live.calibration_offset,
            ),
        )

    def backend(self) -> BackendConfig:
        return BackendConfig(url=self.backend_url, anon_key=self.anon_key, timeout=self.http_timeout)
