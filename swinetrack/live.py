# live.py
"""
Live thermal feed.

The device pushes thermal frames as server-sent events. ``SSEConnector`` owns
the HTTP side: a streaming ``requests`` GET read on a daemon thread, turned
into ``FeedEvent`` objects (open / message / error). ``LiveThermalFeed`` owns
the state: connection status, the reconnect timer and the frame coalescer.
It only ever runs on the scheduler thread.

A lost connection is never terminal: the feed reports ``error``, waits a fixed
delay and reconnects, with no upper bound on attempts.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol, Union

import requests

from .payload import ThermalPayload, parse_live_message
from .scheduling import Cancellable, FrameCoalescer, Scheduler

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 3.0
THERMAL_EVENT = "thermal"


class FeedStatus(str, enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class FeedEvent:
    kind: str  # "open" | "message" | "error"
    event: str = "message"
    data: str = ""
    error: Optional[str] = None


def iter_sse_events(lines: Iterable[Union[str, bytes]]) -> Iterator[FeedEvent]:
    """
    Parse a ``text/event-stream`` body, one line at a time.

    Only ``event`` and ``data`` fields are used; comments and ``id``/``retry``
    fields are skipped. An unterminated block at end of stream is discarded.
    """
    event = "message"
    data = []
    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r")
        if not line:
            if data:
                yield FeedEvent("message", event=event, data="\n".join(data))
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value or "message"
        elif name == "data":
            data.append(value)


class Subscription(Protocol):
    def close(self) -> None: ...


Connector = Callable[[str, Callable[[FeedEvent], None]], Subscription]


class SSESubscription:
    """One streaming connection; events are handed to ``emit`` from the reader thread."""

    def __init__(self, session: requests.Session, url: str, emit: Callable[[FeedEvent], None], timeout, headers) -> None:
        self._session = session
        self._url = url
        self._emit = emit
        self._timeout = timeout
        self._headers = headers
        self._closed = threading.Event()
        self._response: Optional[requests.Response] = None
        self._thread = threading.Thread(target=self._run, name="thermal-sse", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            with self._session.get(self._url, stream=True, headers=self._headers, timeout=self._timeout) as resp:
                self._response = resp
                resp.raise_for_status()
                if self._closed.is_set():
                    return
                self._emit(FeedEvent("open"))
                for ev in iter_sse_events(resp.iter_lines(decode_unicode=True)):
                    if self._closed.is_set():
                        return
                    self._emit(ev)
            if not self._closed.is_set():
                self._emit(FeedEvent("error", error="Stream ended"))
        except (requests.RequestException, OSError, ValueError) as ex:
            if not self._closed.is_set():
                self._emit(FeedEvent("error", error=str(ex) or "Connection failed"))

    def close(self) -> None:
        self._closed.set()
        resp = self._response
        if resp is not None:
            resp.close()


class SSEConnector:
    def __init__(self, session: Optional[requests.Session] = None, timeout=(5.0, 30.0)) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def __call__(self, url: str, emit: Callable[[FeedEvent], None]) -> SSESubscription:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        return SSESubscription(self._session, url, emit, self._timeout, headers)


class LiveThermalFeed:
    """
    Cancellable live subscription delivering at most one payload per frame.

    ``on_payload`` receives the newest ``ThermalPayload`` once per display
    frame; ``on_status`` receives ``(status, retry_count)`` on every
    transition.
    """

    def __init__(
        self,
        url: str,
        scheduler: Scheduler,
        on_payload: Callable[[ThermalPayload], Any],
        on_status: Optional[Callable[[FeedStatus, int], Any]] = None,
        connector: Optional[Connector] = None,
        reconnect_delay: float = RECONNECT_DELAY,
        event_name: str = THERMAL_EVENT,
    ) -> None:
        self.url = url
        self.status = FeedStatus.DISCONNECTED
        self.error: Optional[str] = None
        self.retry_count = 0
        self._scheduler = scheduler
        self._on_payload = on_payload
        self._on_status = on_status
        self._connector = connector or SSEConnector()
        self._reconnect_delay = reconnect_delay
        self._event_name = event_name
        self._coalescer = FrameCoalescer(self._deliver, scheduler.request_frame)
        self._subscription: Optional[Subscription] = None
        self._reconnect_timer: Optional[Cancellable] = None
        self._generation = 0
        self._started = False
        self._closed = False

    @property
    def coalescer(self) -> FrameCoalescer:
        return self._coalescer

    def start(self) -> None:
        if self._started or self._closed or not self.url:
            return
        self._started = True
        self._connect()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._drop_subscription()
        self._cancel_reconnect()
        self._coalescer.cancel()
        self._set_status(FeedStatus.DISCONNECTED)

    # ------------------------------------------------------------------ internals
    def _set_status(self, status: FeedStatus) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status, self.retry_count)

    def _connect(self) -> None:
        self._reconnect_timer = None
        if self._closed:
            return
        self._generation += 1
        generation = self._generation
        logger.info("Connecting to thermal stream (attempt %d): %s", self.retry_count + 1, self.url)
        if self.retry_count > 0:
            self._set_status(FeedStatus.RECONNECTING)

        def emit(ev: FeedEvent) -> None:
            self._scheduler.call_soon_threadsafe(lambda: self._dispatch(generation, ev))

        try:
            self._subscription = self._connector(self.url, emit)
        except (requests.RequestException, OSError, ValueError) as ex:
            self._subscription = None
            self._on_error(str(ex))

    def _dispatch(self, generation: int, ev: FeedEvent) -> None:
        if self._closed or generation != self._generation:
            return
        if ev.kind == "open":
            logger.info("Thermal stream connected")
            self.error = None
            self._cancel_reconnect()
            self._set_status(FeedStatus.CONNECTED)
        elif ev.kind == "message":
            if ev.event != self._event_name:
                return
            payload = parse_live_message(ev.data)
            if payload is not None:
                self._coalescer.submit(payload)
        elif ev.kind == "error":
            self._on_error(ev.error)

    def _on_error(self, message: Optional[str]) -> None:
        self.error = message or "Connection failed"
        logger.warning("Thermal stream lost (%s), retrying in %.0fs", self.error, self._reconnect_delay)
        # Anything still queued from the dead subscription is stale.
        self._generation += 1
        self._drop_subscription()
        self._set_status(FeedStatus.ERROR)
        self._cancel_reconnect()
        self._reconnect_timer = self._scheduler.call_later(self._reconnect_delay, self._reconnect)

    def _reconnect(self) -> None:
        if self._closed:
            return
        self.retry_count += 1
        self._connect()

    def _deliver(self, payload: ThermalPayload) -> None:
        if not self._closed:
            self._on_payload(payload)

    def _drop_subscription(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.close()

    def _cancel_reconnect(self) -> None:
        timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()
