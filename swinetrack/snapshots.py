# snapshots.py
"""
One-shot snapshot loading.

A snapshot is an optical JPEG plus a thermal JSON document stored side by
side. ``SnapshotLoader`` fetches the JSON once off the scheduler thread and
hands the payload back on it; a result for a URL that has since been replaced,
or that arrives after ``close()``, is dropped. Failures are logged and leave
the view without an overlay; nothing is retried.
"""
from __future__ import annotations

import functools
import io
import logging
import threading
from typing import Any, Callable, Optional

import requests
from PIL import Image, UnidentifiedImageError

from .payload import ThermalPayload, parse_snapshot_payload
from .scheduling import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def fetch_thermal_json(url: str, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT) -> ThermalPayload:
    resp = (session or requests).get(url, timeout=timeout)
    if not resp.ok:
        raise requests.HTTPError(f"Failed to load thermal JSON ({resp.status_code})", response=resp)
    return parse_snapshot_payload(resp.content)


def fetch_image(url: str, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT) -> Image.Image:
    """Download an optical frame as an RGB Pillow image."""
    resp = (session or requests).get(url, timeout=timeout)
    resp.raise_for_status()
    img = Image.open(io.BytesIO(resp.content))
    img.load()
    return img.convert("RGB")


def _spawn_daemon(fn: Callable[[], Any]) -> None:
    threading.Thread(target=fn, name="snapshot-fetch", daemon=True).start()


class SnapshotLoader:
    def __init__(
        self,
        scheduler: Scheduler,
        on_payload: Callable[[ThermalPayload], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
        fetch: Callable[[str], ThermalPayload] = fetch_thermal_json,
        spawn: Callable[[Callable[[], Any]], Any] = _spawn_daemon,
    ) -> None:
        self._scheduler = scheduler
        self._on_payload = on_payload
        self._on_error = on_error
        self._fetch = fetch
        self._spawn = spawn
        self._token = 0
        self._closed = False
        self.url: Optional[str] = None
        self.payload: Optional[ThermalPayload] = None

    def load(self, url: Optional[str]) -> None:
        """Start fetching ``url``; any earlier in-flight fetch is superseded."""
        if self._closed:
            return
        self._token += 1
        token = self._token
        self.url = url
        self.payload = None
        if not url:
            return
        self._spawn(lambda: self._worker(url, token))

    def close(self) -> None:
        self._closed = True
        self._token += 1

    def _worker(self, url: str, token: int) -> None:
        try:
            payload = self._fetch(url)
        except (requests.RequestException, OSError, ValueError) as ex:
            logger.error("Error fetching thermal snapshot data from %s: %s", url, ex)
            self._scheduler.call_soon_threadsafe(functools.partial(self._fail, token, ex))
            return
        self._scheduler.call_soon_threadsafe(functools.partial(self._deliver, token, payload))

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self._token

    def _deliver(self, token: int, payload: ThermalPayload) -> None:
        if not self._is_current(token):
            logger.debug("Discarding stale snapshot payload")
            return
        self.payload = payload
        self._on_payload(payload)

    def _fail(self, token: int, ex: Exception) -> None:
        if self._is_current(token) and self._on_error is not None:
            self._on_error(ex)


def load_image_or_none(url: Optional[str], session: Optional[requests.Session] = None) -> Optional[Image.Image]:
    """Optical frame for a snapshot, or None when unavailable."""
    if not url:
        return None
    try:
        return fetch_image(url, session=session)
    except (requests.RequestException, UnidentifiedImageError, OSError) as ex:
        logger.warning("No image available for %s: %s", url, ex)
        return None
