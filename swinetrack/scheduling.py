# scheduling.py
"""
Cooperative single-threaded scheduling.

All render and feed state lives on one thread. Worker threads (HTTP readers)
never touch that state directly; they hand callbacks over with
``call_soon_threadsafe``. ``EventLoop`` is the headless implementation; the Qt
viewer provides the same interface on top of ``QTimer``.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Any, Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1.0 / 60.0


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> Cancellable: ...

    def call_soon_threadsafe(self, callback: Callable[[], Any]) -> None: ...

    def request_frame(self, callback: Callable[[], Any]) -> Cancellable: ...


class TimerHandle:
    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class EventLoop:
    """
    Minimal timer loop with an injectable clock.

    Tests drive it with a fake clock and ``run_pending``; applications call
    ``run_forever`` from the thread that owns the render state.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, frame_interval: float = FRAME_INTERVAL) -> None:
        self._clock = clock
        self._frame_interval = frame_interval
        self._timers: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._inbox: "queue.SimpleQueue[Callable[[], Any]]" = queue.SimpleQueue()
        self._wakeup = threading.Event()
        self._stopped = False

    def time(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle(self._clock() + max(0.0, delay), callback)
        heapq.heappush(self._timers, (handle.when, next(self._seq), handle))
        return handle

    def call_soon(self, callback: Callable[[], Any]) -> TimerHandle:
        return self.call_later(0.0, callback)

    def call_soon_threadsafe(self, callback: Callable[[], Any]) -> None:
        self._inbox.put(callback)
        self._wakeup.set()

    def request_frame(self, callback: Callable[[], Any]) -> TimerHandle:
        return self.call_later(self._frame_interval, callback)

    def _drain_inbox(self) -> None:
        while True:
            try:
                cb = self._inbox.get_nowait()
            except queue.Empty:
                return
            self.call_soon(cb)

    def run_pending(self) -> int:
        """Run every callback that is due now; returns how many ran."""
        self._drain_inbox()
        now = self._clock()
        ran = 0
        while self._timers and self._timers[0][0] <= now:
            _, _, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            try:
                handle.callback()
            except Exception:
                logger.exception("Scheduled callback failed")
            ran += 1
        return ran

    def next_deadline(self) -> Optional[float]:
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        return self._timers[0][0] if self._timers else None

    def run_forever(self) -> None:
        self._stopped = False
        while not self._stopped:
            self.run_pending()
            deadline = self.next_deadline()
            timeout = None if deadline is None else max(0.0, deadline - self._clock())
            self._wakeup.wait(timeout)
            self._wakeup.clear()

    def stop(self) -> None:
        self._stopped = True
        self._wakeup.set()


class FrameCoalescer:
    """
    Caps rendering at one call per display frame.

    ``submit`` only records the latest item and, if no frame is pending,
    requests one. When the frame fires, the most recent item is rendered and
    anything that arrived in between is dropped.
    """

    def __init__(self, render: Callable[[Any], Any], request_frame: Callable[[Callable[[], Any]], Cancellable]) -> None:
        self._render = render
        self._request_frame = request_frame
        self._latest: Any = None
        self._frame: Optional[Cancellable] = None
        self._closed = False
        self.dropped = 0

    @property
    def pending(self) -> bool:
        return self._frame is not None

    def submit(self, item: Any) -> None:
        if self._closed:
            return
        if self._latest is not None:
            self.dropped += 1
        self._latest = item
        if self._frame is None:
            self._frame = self._request_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._frame = None
        item, self._latest = self._latest, None
        if self._closed or item is None:
            return
        self._render(item)

    def cancel(self) -> None:
        """Drop pending work; later submissions are ignored."""
        self._closed = True
        self._latest = None
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None
