# backend.py
"""
Hosted backend client (PostgREST tables + public storage buckets).

The client is an ordinary object built once by the composition root and
passed to whatever needs it; there is no module-level instance.

Tables used:
- ``alerts``    device alerts, newest first
- ``readings``  environmental + thermal summary readings
- ``snapshots`` diary entries pointing at ``<path>.jpg`` / ``<path>.json`` in storage
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

READING_COLUMNS = (
    "id", "device_id", "ts", "temp_c", "humidity_rh", "pressure_hpa",
    "gas_res_ohm", "iaq", "t_min_c", "t_max_c", "t_avg_c",
)
SNAPSHOT_READING_COLUMNS = READING_COLUMNS[3:]

LIVE_BUCKET = "frames-live"
SNAPSHOT_BUCKET = "snapshots"

Timestamp = Union[str, datetime]


class BackendError(RuntimeError):
    """Raised when a backend request fails or returns an error status."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class BackendConfig:
    url: str
    anon_key: str
    timeout: float = 15.0

    @property
    def configured(self) -> bool:
        return bool(self.url) and bool(self.anon_key) and "YOUR_" not in (self.url + self.anon_key)


def _from_row(cls, row: Mapping[str, Any]):
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in row.items() if k in names})


@dataclass
class AlertRow:
    id: Any
    ts: str
    alert_type: str = ""
    severity: str = ""
    message: str = ""
    device_id: Optional[str] = None


@dataclass
class ReadingRow:
    id: Any
    ts: str
    device_id: Optional[str] = None
    temp_c: Optional[float] = None
    humidity_rh: Optional[float] = None
    pressure_hpa: Optional[float] = None
    gas_res_ohm: Optional[float] = None
    iaq: Optional[float] = None
    t_min_c: Optional[float] = None
    t_max_c: Optional[float] = None
    t_avg_c: Optional[float] = None


@dataclass
class SnapshotRow:
    id: Any
    ts: str
    device_id: Optional[str] = None
    overlay_path: Optional[str] = None
    reading_id: Optional[int] = None
    reading: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    thermal_url: Optional[str] = None


def _iso(ts: Timestamp) -> str:
    return ts.isoformat() if isinstance(ts, datetime) else str(ts)


def thermal_path_for(overlay_path: str) -> str:
    return re.sub(r"\.jpg$", ".json", overlay_path, flags=re.IGNORECASE)


def with_cache_buster(url: str, stamp: Optional[int] = None) -> str:
    cb = f"cb={stamp if stamp is not None else int(time.time() * 1000)}"
    return f"{url}{'&' if '?' in url else '?'}{cb}"


class BackendClient:
    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None) -> None:
        if not config.configured:
            logger.error("Backend credentials not configured; set SWINETRACK_BACKEND_URL and SWINETRACK_ANON_KEY")
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": config.anon_key,
            "Authorization": f"Bearer {config.anon_key}",
            "Accept": "application/json",
        })

    # ------------------------------------------------------------------ plumbing
    @property
    def rest_url(self) -> str:
        return self.config.url.rstrip("/") + "/rest/v1"

    def public_url(self, bucket: str, path: str) -> str:
        base = self.config.url.rstrip("/")
        return f"{base}/storage/v1/object/public/{bucket}/{quote(path.lstrip('/'))}"

    def _select(self, table: str, params: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        url = f"{self.rest_url}/{table}"
        try:
            resp = self.session.get(url, params=params, timeout=self.config.timeout)
        except requests.RequestException as ex:
            logger.error("%s query failed: %s", table, ex)
            raise BackendError(f"{table} query failed: {ex}") from ex
        if not resp.ok:
            logger.error("%s query error %s: %s", table, resp.status_code, resp.text[:200])
            raise BackendError(f"{table} query returned {resp.status_code}", status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as ex:
            raise BackendError(f"{table} query returned invalid JSON") from ex
        return data if isinstance(data, list) else []

    @staticmethod
    def _page(offset: int, limit: int) -> List[Tuple[str, str]]:
        return [("offset", str(max(0, offset))), ("limit", str(max(0, limit)))]

    # ------------------------------------------------------------------ queries
    def list_alerts(self, device_id: str, page: int = 0, page_size: int = 50) -> List[AlertRow]:
        logger.debug("list_alerts device=%s page=%d size=%d", device_id, page, page_size)
        rows = self._select("alerts", [
            ("select", "*"),
            ("device_id", f"eq.{device_id}"),
            ("order", "ts.desc"),
            *self._page(page * page_size, page_size),
        ])
        logger.debug("list_alerts result %d", len(rows))
        return [_from_row(AlertRow, r) for r in rows]

    def fetch_readings(
        self,
        device_id: str,
        from_ts: Timestamp,
        to_ts: Timestamp,
        limit: int = 10,
        offset: int = 0,
    ) -> List[ReadingRow]:
        rows = self._select("readings", [
            ("select", ",".join(READING_COLUMNS)),
            ("device_id", f"eq.{device_id}"),
            ("ts", f"gte.{_iso(from_ts)}"),
            ("ts", f"lte.{_iso(to_ts)}"),
            ("order", "ts.desc"),
            *self._page(offset, limit),
        ])
        return [_from_row(ReadingRow, r) for r in rows]

    def fetch_readings_range(self, device_id: str, from_ts: Timestamp, to_ts: Timestamp, limit: int = 15000) -> List[ReadingRow]:
        """All readings in a window, for report export."""
        return self.fetch_readings(device_id, from_ts, to_ts, limit=limit, offset=0)

    def list_snapshots(self, device_id: str, page: int = 0, page_size: int = 20) -> List[SnapshotRow]:
        embedded = ",".join(SNAPSHOT_READING_COLUMNS)
        rows = self._select("snapshots", [
            ("select", f"id,device_id,ts,overlay_path,reading_id,reading:readings({embedded})"),
            ("device_id", f"eq.{device_id}"),
            ("order", "ts.desc"),
            *self._page(page * page_size, page_size),
        ])
        logger.info("Found %d snapshots for %s", len(rows), device_id)
        return [self._with_urls(_from_row(SnapshotRow, r)) for r in rows]

    def _with_urls(self, row: SnapshotRow) -> SnapshotRow:
        if not row.overlay_path:
            logger.debug("No overlay path for snapshot %s", row.id)
            return row
        row.image_url = self.public_url(SNAPSHOT_BUCKET, row.overlay_path)
        row.thermal_url = self.public_url(SNAPSHOT_BUCKET, thermal_path_for(row.overlay_path))
        return row

    def live_frame_urls(self, device_id: str) -> Tuple[str, str]:
        """Cache-busted (frame_url, thermal_url) for the device's current live frame."""
        stamp = int(time.time() * 1000)
        frame = self.public_url(LIVE_BUCKET, f"{device_id}/current.jpg")
        thermal = self.public_url(LIVE_BUCKET, f"{device_id}/current.json")
        return with_cache_buster(frame, stamp), with_cache_buster(thermal, stamp)

    def test_connection(self, device_id: Optional[str] = None) -> bool:
        params = [("select", "id"), ("limit", "1")]
        if device_id:
            params.append(("device_id", f"eq.{device_id}"))
        try:
            self._select("snapshots", params)
        except BackendError as ex:
            logger.error("Backend connection test failed: %s", ex)
            return False
        logger.info("Backend connection test successful")
        return True
