# gui.py
"""
PyQt6 GUI for SwineTrack.

Features:
- Live tab: thermal overlay from the on-site stream over the latest camera frame
- Snapshots tab: diary entries with their stored thermal overlay
- Alerts tab: severity filter and handling instructions
- History tab: readings table and PDF report export
- Light/Dark theme toggle

Network I/O runs on daemon threads; results come back through ``QtScheduler``
so all widget and render state stays on the GUI thread.

Dependencies: PyQt6, Pillow, NumPy, ReportLab (for PDF export)
"""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, List, Optional, Set

import numpy as np
import requests
from PIL import Image

from PyQt6 import QtCore, QtGui, QtWidgets

from .alerts import CRITICAL, WARNING, classify_severity, filter_alerts, instructions_for
from .backend import AlertRow, BackendClient, BackendError, ReadingRow, SnapshotRow
from .config import AppConfig
from .io_utils import (
    REPORT_RANGES,
    SUMMARY_LOOKBACK,
    ReadingsSummary,
    ensure_logging,
    export_grid_csv,
    export_stats_json,
    format_date,
    format_time,
    latest_readings_summary,
    reading_table_row,
    render_stats,
    resolve_report_range,
    save_png,
    write_readings_pdf,
)
from .live import FeedStatus, LiveThermalFeed
from .overlay import (
    CellPrimitive,
    LinePrimitive,
    RenderDescriptor,
    TextPrimitive,
    ThermalRender,
    composite_image,
    render_payload,
)
from .payload import ThermalPayload
from .processing import RendererParams
from .scheduling import FRAME_INTERVAL
from .snapshots import SnapshotLoader, fetch_image, load_image_or_none

logger = logging.getLogger(__name__)

LIVE_FRAME_REFRESH_MS = 5000
READINGS_REFRESH_MS = 5000
READINGS_POLL_LIMIT = 2000


# ---------------------------------------------------------------------- scheduling
class _QtTimer:
    def __init__(self, owner: "QtScheduler", delay: float, callback: Callable[[], Any]) -> None:
        self._owner = owner
        self._callback = callback
        self._timer = QtCore.QTimer(owner)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)
        self._timer.start(int(round(max(0.0, delay) * 1000)))

    def _fire(self) -> None:
        self._owner._timers.discard(self)
        self._timer.deleteLater()
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")

    def cancel(self) -> None:
        if self in self._owner._timers:
            self._owner._timers.discard(self)
            self._timer.stop()
            self._timer.deleteLater()


class QtScheduler(QtCore.QObject):
    """
    Scheduler on top of the Qt event loop.

    ``call_soon_threadsafe`` may be called from any thread; the callback runs
    on the thread this object lives in.
    """
    _posted = QtCore.pyqtSignal(object)

    def __init__(self, parent=None, frame_interval: float = FRAME_INTERVAL):
        super().__init__(parent)
        self._frame_interval = frame_interval
        self._timers: Set[_QtTimer] = set()
        self._posted.connect(self._run_posted, QtCore.Qt.ConnectionType.QueuedConnection)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _QtTimer:
        t = _QtTimer(self, delay, callback)
        self._timers.add(t)
        return t

    def call_soon_threadsafe(self, callback: Callable[[], Any]) -> None:
        self._posted.emit(callback)

    def request_frame(self, callback: Callable[[], Any]) -> _QtTimer:
        return self.call_later(self._frame_interval, callback)

    def _run_posted(self, callback) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Posted callback failed")


def run_in_background(
    scheduler,
    work: Callable[[], Any],
    on_done: Callable[[Any], Any],
    on_error: Optional[Callable[[Exception], Any]] = None,
    name: str = "swinetrack-io",
) -> threading.Thread:
    """Run blocking ``work`` on a daemon thread and hand the result back on the GUI thread."""
    def worker():
        try:
            result = work()
        except (BackendError, requests.RequestException, OSError, ValueError) as ex:
            logger.error("%s failed: %s", name, ex)
            if on_error is not None:
                scheduler.call_soon_threadsafe(lambda err=ex: on_error(err))
            return
        except Exception as ex:
            logger.exception("%s failed unexpectedly", name)
            if on_error is not None:
                scheduler.call_soon_threadsafe(lambda err=ex: on_error(err))
            return
        scheduler.call_soon_threadsafe(lambda: on_done(result))

    t = threading.Thread(target=worker, name=name, daemon=True)
    t.start()
    return t


# ---------------------------------------------------------------------- painting
def _qimage_from_array(arr: np.ndarray) -> QtGui.QImage:
    """
    Convert an HxWx3 uint8 ndarray to a detached QImage.
    """
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError("Unsupported array shape for preview")
    h, w, _ = arr.shape
    buf = np.ascontiguousarray(np.clip(arr, 0, 255).astype(np.uint8))
    # QImage does not take ownership of the NumPy buffer, so copy to detach
    return QtGui.QImage(buf.data, w, h, 3 * w, QtGui.QImage.Format.Format_RGB888).copy()


def _qcolor(rgb, opacity: float = 1.0) -> QtGui.QColor:
    c = QtGui.QColor(int(rgb[0]), int(rgb[1]), int(rgb[2]))
    c.setAlphaF(float(opacity))
    return c


def paint_descriptor(painter: QtGui.QPainter, desc: RenderDescriptor, rect: QtCore.QRectF) -> None:
    """Draw a render descriptor scaled into ``rect``."""
    if desc.is_empty or desc.width <= 0 or desc.height <= 0:
        return
    sx = rect.width() / desc.width
    sy = rect.height() / desc.height
    painter.save()
    painter.translate(rect.topLeft())
    painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing, True)
    painter.setPen(QtCore.Qt.PenStyle.NoPen)
    painter.setOpacity(desc.opacity)
    label: Optional[TextPrimitive] = None
    for prim in desc:
        if isinstance(prim, CellPrimitive):
            painter.fillRect(QtCore.QRectF(prim.x * sx, prim.y * sy, prim.size * sx, prim.size * sy), _qcolor(prim.color))
        elif isinstance(prim, LinePrimitive):
            painter.setOpacity(1.0)
            pen = QtGui.QPen(_qcolor(prim.color, prim.opacity))
            pen.setWidthF(max(1.0, prim.width * min(sx, sy)))
            pen.setCapStyle(QtCore.Qt.PenCapStyle.RoundCap)
            painter.setPen(pen)
            painter.drawLine(QtCore.QPointF(prim.x1 * sx, prim.y1 * sy), QtCore.QPointF(prim.x2 * sx, prim.y2 * sy))
        elif isinstance(prim, TextPrimitive):
            label = prim
    painter.restore()
    if label is not None:
        _paint_label(painter, label, rect)


def _paint_label(painter: QtGui.QPainter, label: TextPrimitive, rect: QtCore.QRectF) -> None:
    painter.save()
    font = painter.font()
    font.setBold(True)
    painter.setFont(font)
    metrics = QtGui.QFontMetricsF(font)
    tw = metrics.horizontalAdvance(label.text)
    th = metrics.height()
    box = QtCore.QRectF(rect.right() - 8 - tw - 12, rect.top() + 8, tw + 12, th + 6)
    painter.setPen(QtCore.Qt.PenStyle.NoPen)
    painter.setBrush(QtGui.QColor(0, 0, 0, 153))
    painter.drawRoundedRect(box, 4, 4)
    painter.setPen(_qcolor(label.color))
    painter.drawText(box, QtCore.Qt.AlignmentFlag.AlignCenter, label.text)
    painter.restore()


class ThermalView(QtWidgets.QWidget):
    """
    Camera frame with the thermal overlay painted on top.
    """
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(320, 240)
        self._base: Optional[QtGui.QImage] = None
        self._desc: Optional[RenderDescriptor] = None
        self._placeholder = "No image available"

    def set_base_image(self, img: Optional[Image.Image]):
        self._base = _qimage_from_array(np.array(img.convert("RGB"))) if img is not None else None
        self.update()

    def set_descriptor(self, desc: Optional[RenderDescriptor]):
        self._desc = desc
        self.update()

    def set_placeholder(self, text: str):
        self._placeholder = text
        self.update()

    def descriptor(self) -> Optional[RenderDescriptor]:
        return self._desc

    def paintEvent(self, e: QtGui.QPaintEvent):
        painter = QtGui.QPainter(self)
        rect = QtCore.QRectF(self.rect())
        painter.fillRect(rect, QtGui.QColor(20, 20, 20))
        if self._base is not None:
            painter.drawImage(rect, self._base)
        if self._desc is not None:
            paint_descriptor(painter, self._desc, rect)
        if self._base is None and (self._desc is None or self._desc.is_empty):
            painter.setPen(QtGui.QColor(200, 200, 200))
            painter.drawText(rect, QtCore.Qt.AlignmentFlag.AlignCenter, self._placeholder)
        painter.end()


def _group(title: str, widget: QtWidgets.QWidget) -> QtWidgets.QGroupBox:
    group = QtWidgets.QGroupBox(title)
    v = QtWidgets.QVBoxLayout(group)
    v.addWidget(widget)
    return group


def _hbox(*widgets) -> QtWidgets.QWidget:
    w = QtWidgets.QWidget()
    l = QtWidgets.QHBoxLayout(w)
    l.setContentsMargins(0, 0, 0, 0)
    for a in widgets:
        l.addWidget(a)
    return w


# ---------------------------------------------------------------------- tabs
class LiveTab(QtWidgets.QWidget):
    """
    Live thermal overlay with connection status and renderer controls.
    """
    def __init__(self, config: AppConfig, client: BackendClient, scheduler: QtScheduler, parent=None):
        super().__init__(parent)
        self.config = config
        self.client = client
        self.scheduler = scheduler
        self.params = config.live_params.clamped()
        self.current_render: Optional[ThermalRender] = None
        self.last_payload: Optional[ThermalPayload] = None
        self.feed: Optional[LiveThermalFeed] = None
        self._frame_image: Optional[Image.Image] = None
        self._build_ui()

        self._frameTimer = QtCore.QTimer(self)
        self._frameTimer.timeout.connect(self.refresh_frame)
        self._readingsTimer = QtCore.QTimer(self)
        self._readingsTimer.timeout.connect(self.refresh_readings)
        self.readings: Optional[ReadingsSummary] = None

    def _build_ui(self):
        layout = QtWidgets.QHBoxLayout(self)

        ctrl = QtWidgets.QWidget()
        form = QtWidgets.QFormLayout(ctrl)

        self.opacitySlider = QtWidgets.QSlider(QtCore.Qt.Orientation.Horizontal)
        self.opacitySlider.setRange(0, 100)
        self.opacitySlider.setValue(int(round(self.params.overlay_opacity * 100)))
        self.opacitySpin = QtWidgets.QDoubleSpinBox()
        self.opacitySpin.setRange(0.0, 1.0)
        self.opacitySpin.setSingleStep(0.05)
        self.opacitySpin.setDecimals(2)
        self.opacitySpin.setValue(self.params.overlay_opacity)
        self._bind_slider_spin(self.opacitySlider, self.opacitySpin, "overlay_opacity", scale=0.01, tip="Opacity of the thermal cells.")

        self.factorSpin = QtWidgets.QDoubleSpinBox()
        self.factorSpin.setRange(1.0, 8.0)
        self.factorSpin.setSingleStep(0.5)
        self.factorSpin.setValue(self.params.interpolation_factor)
        self.factorSpin.setToolTip("Upscaling factor. 1 disables smoothing and interpolation.")
        self.factorSpin.valueChanged.connect(lambda v: self._update_param("interpolation_factor", v))

        self.offsetSpin = QtWidgets.QDoubleSpinBox()
        self.offsetSpin.setRange(-20.0, 20.0)
        self.offsetSpin.setSingleStep(0.1)
        self.offsetSpin.setValue(self.params.calibration_offset)
        self.offsetSpin.setToolTip("Calibration offset added to every sample (°C).")
        self.offsetSpin.valueChanged.connect(lambda v: self._update_param("calibration_offset", v))

        form.addRow("Overlay Opacity:", _hbox(self.opacitySlider, self.opacitySpin))
        form.addRow("Interpolation:", self.factorSpin)
        form.addRow("Calibration (°C):", self.offsetSpin)

        self.statusLabel = QtWidgets.QLabel("Disconnected")
        self.statsLabel = QtWidgets.QLabel("")
        self.connectBtn = QtWidgets.QPushButton("Connect")
        self.connectBtn.clicked.connect(self.toggle_feed)
        self.exportBtn = QtWidgets.QPushButton("Export Frame (PNG/CSV/JSON)")
        self.exportBtn.clicked.connect(self.on_export)
        form.addRow("Status:", self.statusLabel)
        form.addRow("Frame:", self.statsLabel)
        form.addRow("", self.connectBtn)
        form.addRow("", self.exportBtn)

        self.tempLabel = QtWidgets.QLabel("-")
        self.humidityLabel = QtWidgets.QLabel("-")
        self.ammoniaLabel = QtWidgets.QLabel("-")
        for label, tip in (
            (self.tempLabel, "Latest average pen temperature"),
            (self.humidityLabel, "Latest relative humidity"),
            (self.ammoniaLabel, "Latest gas sensor resistance"),
        ):
            label.setToolTip(tip)
        form.addRow("Temperature:", self.tempLabel)
        form.addRow("Humidity:", self.humidityLabel)
        form.addRow("Ammonia:", self.ammoniaLabel)
        layout.addWidget(ctrl, 0)

        self.view = ThermalView()
        self.view.setToolTip("Live camera frame with thermal overlay.")
        layout.addWidget(_group("Live Thermal", self.view), 1)

    def _bind_slider_spin(self, slider, spin, field, scale=1.0, tip: str = ""):
        if tip:
            slider.setToolTip(tip)
            spin.setToolTip(tip)

        def on_slider(v):
            value = v * scale
            spin.blockSignals(True)
            spin.setValue(value)
            spin.blockSignals(False)
            self._update_param(field, value)

        def on_spin(v):
            slider_value = int(round(v / scale)) if scale else int(v)
            slider_value = max(slider.minimum(), min(slider.maximum(), slider_value))
            slider.blockSignals(True)
            slider.setValue(slider_value)
            slider.blockSignals(False)
            self._update_param(field, v)

        slider.valueChanged.connect(on_slider)
        spin.valueChanged.connect(on_spin)

    def _update_param(self, name, value):
        d = asdict(self.params)
        d[name] = value
        self.params = RendererParams(**d).clamped()
        if self.last_payload is not None:
            self.on_payload(self.last_payload)

    # feed
    def start_feed(self):
        if self.feed is not None:
            return
        if not self.config.stream_url:
            self.statusLabel.setText("No stream URL configured")
            logger.warning("SWINETRACK_STREAM_URL is not set; live feed disabled")
            return
        self.feed = LiveThermalFeed(
            self.config.stream_url,
            self.scheduler,
            on_payload=self.on_payload,
            on_status=self.on_status,
            reconnect_delay=self.config.reconnect_delay,
        )
        self.feed.start()
        self.connectBtn.setText("Disconnect")
        self.refresh_frame()
        self._frameTimer.start(LIVE_FRAME_REFRESH_MS)

    def stop_feed(self):
        self._frameTimer.stop()
        feed, self.feed = self.feed, None
        if feed is not None:
            feed.close()
        self.connectBtn.setText("Connect")

    def toggle_feed(self):
        if self.feed is None:
            self.start_feed()
        else:
            self.stop_feed()

    def on_status(self, status: FeedStatus, retry_count: int):
        if status is FeedStatus.CONNECTED:
            text = "Live"
        elif status is FeedStatus.RECONNECTING:
            text = f"Reconnecting… (attempt {retry_count})"
        elif status is FeedStatus.ERROR:
            err = self.feed.error if self.feed is not None else None
            text = f"Error: {err}" if err else "Error"
        else:
            text = "Disconnected"
        self.statusLabel.setText(text)
        if status is not FeedStatus.CONNECTED and self.current_render is None:
            self.view.set_placeholder(text)

    def on_payload(self, payload: ThermalPayload):
        self.last_payload = payload
        self.current_render = render_payload(payload, self.params)
        self.view.set_descriptor(self.current_render.descriptor)
        a = self.current_render.analysis
        self.statsLabel.setText(
            f"{self.current_render.grid.display_width}x{self.current_render.grid.display_height}  "
            f"T[min/max]={a.t_min:.1f}/{a.t_max:.1f}°C"
        )

    def refresh_frame(self):
        frame_url, _ = self.client.live_frame_urls(self.config.device_id)
        run_in_background(
            self.scheduler,
            lambda: fetch_image(frame_url, session=self.client.session, timeout=self.config.http_timeout),
            self._on_frame,
            lambda ex: logger.debug("Live frame unavailable: %s", ex),
            name="live-frame",
        )

    def _on_frame(self, img: Image.Image):
        self._frame_image = img
        self.view.set_base_image(img)

    # environmental readings
    def start_readings(self):
        self.refresh_readings()
        self._readingsTimer.start(READINGS_REFRESH_MS)

    def stop_readings(self):
        self._readingsTimer.stop()

    def refresh_readings(self):
        now = datetime.now().astimezone()

        def work():
            rows = self.client.fetch_readings(
                self.config.device_id, now - SUMMARY_LOOKBACK, now + timedelta(days=1), limit=READINGS_POLL_LIMIT
            )
            return latest_readings_summary(rows)

        run_in_background(
            self.scheduler,
            work,
            self.on_readings,
            lambda ex: logger.debug("Readings unavailable: %s", ex),
            name="live-readings",
        )

    def on_readings(self, summary: Optional[ReadingsSummary]):
        if summary is None:
            return
        self.readings = summary
        r = summary.latest
        self.tempLabel.setText("-" if r.t_avg_c is None else f"{r.t_avg_c:.1f} °C")
        self.humidityLabel.setText("-" if r.humidity_rh is None else f"{r.humidity_rh:.1f} %")
        ammonia = summary.ammonia_now
        self.ammoniaLabel.setText("-" if ammonia is None else f"{ammonia:.1f} kΩ")

    def on_export(self):
        if self.current_render is None:
            QtWidgets.QMessageBox.information(self, "Nothing to export", "No thermal frame received yet.")
            return
        out_dir = QtWidgets.QFileDialog.getExistingDirectory(self, "Choose export folder")
        if not out_dir:
            return
        stem = f"{self.config.device_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        try:
            img = composite_image(self.current_render.descriptor, self._frame_image)
            save_png(img, Path(out_dir) / f"{stem}_overlay.png")
            export_grid_csv(self.current_render.grid, Path(out_dir) / f"{stem}_grid.csv")
            export_stats_json(render_stats(self.current_render, self.last_payload), Path(out_dir) / f"{stem}_stats.json")
            self.statsLabel.setText(f"Exported files to {out_dir}")
        except OSError as ex:
            logger.exception("Export error")
            QtWidgets.QMessageBox.critical(self, "Export error", str(ex))


class SnapshotsTab(QtWidgets.QWidget):
    """
    Snapshot diary: list on the left, selected entry with overlay on the right.
    """
    def __init__(self, config: AppConfig, client: BackendClient, scheduler: QtScheduler, parent=None):
        super().__init__(parent)
        self.config = config
        self.client = client
        self.scheduler = scheduler
        self.rows: List[SnapshotRow] = []
        self.page = 0
        self.current: Optional[SnapshotRow] = None
        self.loader = SnapshotLoader(scheduler, self.on_payload, self.on_payload_error)
        self._build_ui()

    def _build_ui(self):
        layout = QtWidgets.QHBoxLayout(self)

        left = QtWidgets.QWidget()
        v = QtWidgets.QVBoxLayout(left)
        self.list = QtWidgets.QListWidget()
        self.list.currentRowChanged.connect(self.on_select)
        self.refreshBtn = QtWidgets.QPushButton("Refresh")
        self.refreshBtn.clicked.connect(lambda: self.load_page(0))
        self.moreBtn = QtWidgets.QPushButton("Load More")
        self.moreBtn.clicked.connect(lambda: self.load_page(self.page + 1))
        self.fastCheck = QtWidgets.QCheckBox("Performance mode")
        self.fastCheck.setToolTip("Skip smoothing and interpolation when rendering overlays.")
        self.fastCheck.stateChanged.connect(lambda s: self._rerender())
        v.addWidget(self.list, 1)
        v.addWidget(_hbox(self.refreshBtn, self.moreBtn))
        v.addWidget(self.fastCheck)
        layout.addWidget(left, 0)

        right = QtWidgets.QWidget()
        rv = QtWidgets.QVBoxLayout(right)
        self.view = ThermalView()
        self.detail = QtWidgets.QLabel("")
        self.detail.setWordWrap(True)
        rv.addWidget(_group("Snapshot", self.view), 1)
        rv.addWidget(self.detail)
        layout.addWidget(right, 1)

    def params(self) -> RendererParams:
        return self.config.list_params if self.fastCheck.isChecked() else self.config.live_params

    def load_page(self, page: int):
        self.refreshBtn.setEnabled(False)
        self.moreBtn.setEnabled(False)
        run_in_background(
            self.scheduler,
            lambda: self.client.list_snapshots(self.config.device_id, page=page),
            lambda rows: self._on_rows(page, rows),
            self._on_rows_error,
            name="list-snapshots",
        )

    def _on_rows(self, page: int, rows: List[SnapshotRow]):
        self.refreshBtn.setEnabled(True)
        self.moreBtn.setEnabled(bool(rows))
        if page == 0:
            self.rows = []
            self.list.clear()
        self.page = page
        for row in rows:
            self.rows.append(row)
            reading = row.reading or {}
            temp = reading.get("temp_c")
            extra = f"  {temp:.1f}°C" if isinstance(temp, (int, float)) else ""
            self.list.addItem(f"{format_date(row.ts)} {format_time(row.ts)}{extra}")

    def _on_rows_error(self, ex: Exception):
        self.refreshBtn.setEnabled(True)
        self.moreBtn.setEnabled(True)
        QtWidgets.QMessageBox.critical(self, "Snapshots", f"Failed to load snapshots:\n{ex}")

    def on_select(self, index: int):
        if index < 0 or index >= len(self.rows):
            return
        row = self.rows[index]
        self.current = row
        self.view.set_base_image(None)
        self.view.set_descriptor(None)
        self.view.set_placeholder("Loading…")
        reading = row.reading or {}
        self.detail.setText(
            "  ".join(f"{k}: {v}" for k, v in reading.items() if v is not None) or "No reading attached"
        )
        run_in_background(
            self.scheduler,
            lambda: load_image_or_none(row.image_url, session=self.client.session),
            lambda img: self._on_image(row, img),
            name="snapshot-image",
        )
        self.loader.load(row.thermal_url)

    def _on_image(self, row: SnapshotRow, img: Optional[Image.Image]):
        if row is not self.current:
            return
        if img is None:
            self.view.set_placeholder("No image available")
        self.view.set_base_image(img)

    def on_payload(self, payload: ThermalPayload):
        render = render_payload(payload, self.params())
        self.view.set_descriptor(render.descriptor)

    def on_payload_error(self, ex: Exception):
        self.view.set_descriptor(None)

    def _rerender(self):
        if self.loader.payload is not None:
            self.on_payload(self.loader.payload)

    def shutdown(self):
        self.loader.close()


class AlertsTab(QtWidgets.QWidget):
    def __init__(self, config: AppConfig, client: BackendClient, scheduler: QtScheduler, parent=None):
        super().__init__(parent)
        self.config = config
        self.client = client
        self.scheduler = scheduler
        self.alerts: List[AlertRow] = []
        self.shown: List[AlertRow] = []

        v = QtWidgets.QVBoxLayout(self)
        self.filterCombo = QtWidgets.QComboBox()
        self.filterCombo.addItems(["all", CRITICAL, WARNING])
        self.filterCombo.currentTextChanged.connect(lambda s: self._populate())
        self.refreshBtn = QtWidgets.QPushButton("Refresh")
        self.refreshBtn.clicked.connect(self.refresh)
        v.addWidget(_hbox(QtWidgets.QLabel("Severity:"), self.filterCombo, self.refreshBtn))
        split = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        self.list = QtWidgets.QListWidget()
        self.list.currentRowChanged.connect(self.on_select)
        self.instructions = QtWidgets.QTextBrowser()
        split.addWidget(self.list)
        split.addWidget(self.instructions)
        v.addWidget(split, 1)

    def refresh(self):
        self.refreshBtn.setEnabled(False)
        run_in_background(
            self.scheduler,
            lambda: self.client.list_alerts(self.config.device_id),
            self.set_alerts,
            self._on_error,
            name="list-alerts",
        )

    def set_alerts(self, alerts: List[AlertRow]):
        self.refreshBtn.setEnabled(True)
        self.alerts = list(alerts)
        self._populate()

    def _on_error(self, ex: Exception):
        self.refreshBtn.setEnabled(True)
        QtWidgets.QMessageBox.critical(self, "Alerts", f"Failed to load alerts:\n{ex}")

    def _populate(self):
        self.shown = filter_alerts(self.alerts, self.filterCombo.currentText())
        self.list.clear()
        self.instructions.clear()
        for a in self.shown:
            sev = classify_severity(a).upper()
            self.list.addItem(f"[{sev}] {format_date(a.ts)} {format_time(a.ts)}  {a.message or a.alert_type}")

    def on_select(self, index: int):
        if index < 0 or index >= len(self.shown):
            return
        steps = "".join(f"<li>{s}</li>" for s in instructions_for(self.shown[index]))
        self.instructions.setHtml(f"<h4>What to do</h4><ol>{steps}</ol>")


class HistoryTab(QtWidgets.QWidget):
    """
    Readings history for a date range, exportable as a PDF report.
    """
    def __init__(self, config: AppConfig, client: BackendClient, scheduler: QtScheduler, parent=None):
        super().__init__(parent)
        self.config = config
        self.client = client
        self.scheduler = scheduler
        self.rows: List[ReadingRow] = []
        self.period_text = ""

        v = QtWidgets.QVBoxLayout(self)
        self.rangeCombo = QtWidgets.QComboBox()
        self.rangeCombo.addItems(list(REPORT_RANGES))
        self.startEdit = QtWidgets.QDateEdit(QtCore.QDate.currentDate())
        self.endEdit = QtWidgets.QDateEdit(QtCore.QDate.currentDate())
        for e in (self.startEdit, self.endEdit):
            e.setCalendarPopup(True)
        self.rangeCombo.currentTextChanged.connect(self._on_range_kind)
        self._on_range_kind(self.rangeCombo.currentText())
        self.loadBtn = QtWidgets.QPushButton("Load")
        self.loadBtn.clicked.connect(self.load)
        self.pdfBtn = QtWidgets.QPushButton("Export PDF…")
        self.pdfBtn.clicked.connect(self.on_export_pdf)
        v.addWidget(_hbox(self.rangeCombo, self.startEdit, self.endEdit, self.loadBtn, self.pdfBtn))

        self.table = QtWidgets.QTableWidget(0, 5)
        self.table.setHorizontalHeaderLabels(["Date", "Time", "Temp (°C)", "Humidity (%)", "Ammonia (kΩ)"])
        self.table.horizontalHeader().setSectionResizeMode(QtWidgets.QHeaderView.ResizeMode.Stretch)
        self.table.setEditTriggers(QtWidgets.QAbstractItemView.EditTrigger.NoEditTriggers)
        self.summary = QtWidgets.QLabel("")
        v.addWidget(self.table, 1)
        v.addWidget(self.summary)

    def _on_range_kind(self, kind: str):
        custom = kind == "custom"
        self.startEdit.setEnabled(custom)
        self.endEdit.setEnabled(custom)

    def _range(self):
        start = end = None
        if self.rangeCombo.currentText() == "custom":
            start = datetime.combine(self.startEdit.date().toPyDate(), datetime.min.time())
            end = datetime.combine(self.endEdit.date().toPyDate(), datetime.min.time())
        return resolve_report_range(self.rangeCombo.currentText(), start=start, end=end)

    def load(self):
        try:
            lo, hi, period = self._range()
        except ValueError as ex:
            QtWidgets.QMessageBox.warning(self, "Invalid range", str(ex))
            return
        self.loadBtn.setEnabled(False)
        run_in_background(
            self.scheduler,
            lambda: self.client.fetch_readings_range(self.config.device_id, lo, hi),
            lambda rows: self.set_rows(rows, period),
            self._on_error,
            name="fetch-readings",
        )

    def set_rows(self, rows: List[ReadingRow], period_text: str):
        self.loadBtn.setEnabled(True)
        self.rows = list(rows)
        self.period_text = period_text
        self.table.setRowCount(len(self.rows))
        for r, row in enumerate(self.rows):
            for c, text in enumerate(reading_table_row(row)):
                self.table.setItem(r, c, QtWidgets.QTableWidgetItem(text))
        self.summary.setText(f"{period_text}: {len(self.rows)} records")

    def _on_error(self, ex: Exception):
        self.loadBtn.setEnabled(True)
        QtWidgets.QMessageBox.critical(self, "History", f"Failed to load readings:\n{ex}")

    def on_export_pdf(self):
        if not self.rows:
            QtWidgets.QMessageBox.information(self, "No data", "No data available for the selected range.")
            return
        path, _ = QtWidgets.QFileDialog.getSaveFileName(self, "Save report", "swinetrack_report.pdf", "PDF (*.pdf)")
        if not path:
            return
        try:
            write_readings_pdf(self.rows, self.period_text, path)
            self.summary.setText(f"Saved report: {path}")
        except (RuntimeError, OSError) as ex:
            logger.exception("PDF export error")
            QtWidgets.QMessageBox.critical(self, "Export error", str(ex))


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, config: AppConfig, client: BackendClient, scheduler: Optional[QtScheduler] = None):
        super().__init__()
        self.setWindowTitle("SwineTrack")
        self.resize(1200, 800)
        self.config = config
        self.scheduler = scheduler or QtScheduler(self)

        self.tabs = QtWidgets.QTabWidget()
        self.liveTab = LiveTab(config, client, self.scheduler)
        self.snapshotsTab = SnapshotsTab(config, client, self.scheduler)
        self.alertsTab = AlertsTab(config, client, self.scheduler)
        self.historyTab = HistoryTab(config, client, self.scheduler)
        self.tabs.addTab(self.liveTab, "Live")
        self.tabs.addTab(self.snapshotsTab, "Snapshots")
        self.tabs.addTab(self.alertsTab, "Alerts")
        self.tabs.addTab(self.historyTab, "History")

        self.setCentralWidget(self.tabs)
        self._build_menu()
        self.apply_theme(False)
        self.statusBar().showMessage("Ready" if client.config.configured else "Backend not configured")

    def _build_menu(self):
        m = self.menuBar()
        fileMenu = m.addMenu("&File")
        exitAct = QtGui.QAction("Exit", self)
        exitAct.triggered.connect(self.close)
        fileMenu.addAction(exitAct)

        viewMenu = m.addMenu("&View")
        darkAct = QtGui.QAction("Dark Theme", self)
        darkAct.setCheckable(True)
        darkAct.toggled.connect(self.apply_theme)
        viewMenu.addAction(darkAct)

        helpMenu = m.addMenu("&Help")
        aboutAct = QtGui.QAction("About", self)
        aboutAct.triggered.connect(lambda: QtWidgets.QMessageBox.information(self, "About", "SwineTrack\nThermal pen monitor"))
        helpMenu.addAction(aboutAct)

    def apply_theme(self, dark: bool):
        if dark:
            palette = QtGui.QPalette()
            palette.setColor(QtGui.QPalette.ColorRole.Window, QtGui.QColor(53, 53, 53))
            palette.setColor(QtGui.QPalette.ColorRole.WindowText, QtCore.Qt.GlobalColor.white)
            palette.setColor(QtGui.QPalette.ColorRole.Base, QtGui.QColor(25, 25, 25))
            palette.setColor(QtGui.QPalette.ColorRole.AlternateBase, QtGui.QColor(53, 53, 53))
            palette.setColor(QtGui.QPalette.ColorRole.Text, QtCore.Qt.GlobalColor.white)
            palette.setColor(QtGui.QPalette.ColorRole.Button, QtGui.QColor(53, 53, 53))
            palette.setColor(QtGui.QPalette.ColorRole.ButtonText, QtCore.Qt.GlobalColor.white)
            palette.setColor(QtGui.QPalette.ColorRole.Highlight, QtGui.QColor(72, 115, 7))
            palette.setColor(QtGui.QPalette.ColorRole.HighlightedText, QtCore.Qt.GlobalColor.white)
            self.setPalette(palette)
        else:
            self.setPalette(self.style().standardPalette())

    def closeEvent(self, e: QtGui.QCloseEvent):
        self.liveTab.stop_feed()
        self.liveTab.stop_readings()
        self.snapshotsTab.shutdown()
        super().closeEvent(e)


def run_gui(config: AppConfig, client: BackendClient) -> int:
    ensure_logging(config.log_path)
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication([])
    w = MainWindow(config, client)
    w.show()
    w.liveTab.start_feed()
    if client.config.configured:
        w.liveTab.start_readings()
        w.snapshotsTab.load_page(0)
        w.alertsTab.refresh()
    return app.exec()
