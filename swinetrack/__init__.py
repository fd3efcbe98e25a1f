from .config import AppConfig
from .overlay import RenderDescriptor, ThermalRender, composite_image, render_payload
from .payload import ThermalPayload, normalize_payload, parse_live_message, parse_snapshot_payload
from .processing import RendererParams

__all__ = [
    "AppConfig",
    "RenderDescriptor",
    "RendererParams",
    "ThermalPayload",
    "ThermalRender",
    "composite_image",
    "normalize_payload",
    "parse_live_message",
    "parse_snapshot_payload",
    "render_payload",
]
__version__ = "1.0.0"
