import threading

import pytest

pytest.importorskip("PyQt6.QtWidgets")

from PyQt6 import QtCore, QtGui, QtWidgets  # noqa: E402
from PyQt6.QtTest import QTest  # noqa: E402

from swinetrack.backend import AlertRow, BackendClient, BackendConfig, ReadingRow  # noqa: E402
from swinetrack.config import AppConfig  # noqa: E402
from swinetrack.gui import MainWindow, QtScheduler, paint_descriptor, run_in_background  # noqa: E402
from swinetrack.io_utils import latest_readings_summary  # noqa: E402
from swinetrack.live import FeedStatus  # noqa: E402
from swinetrack.overlay import render_payload  # noqa: E402
from swinetrack.processing import RendererParams  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


def _wait_until(predicate, timeout_ms=1000):
    waited = 0
    while not predicate() and waited < timeout_ms:
        QTest.qWait(10)
        waited += 10
    return predicate()


def test_scheduler_timers(qapp):
    sched = QtScheduler()
    ran = []
    sched.call_later(0.01, lambda: ran.append("timer"))
    cancelled = sched.call_later(0.01, lambda: ran.append("cancelled"))
    cancelled.cancel()
    assert _wait_until(lambda: ran == ["timer"])
    QTest.qWait(30)
    assert ran == ["timer"]


def test_scheduler_threadsafe_post(qapp):
    sched = QtScheduler()
    seen = []
    t = threading.Thread(target=lambda: sched.call_soon_threadsafe(lambda: seen.append(threading.current_thread())))
    t.start()
    t.join()
    assert _wait_until(lambda: len(seen) == 1)
    assert seen[0] is threading.main_thread()


def test_paint_descriptor(qapp, payload_factory):
    desc = render_payload(
        payload_factory(width=4, height=3, fill=0.0),
        RendererParams(overlay_opacity=1.0, interpolation_factor=1.0),
    ).descriptor
    img = QtGui.QImage(40, 30, QtGui.QImage.Format.Format_ARGB32)
    img.fill(QtGui.QColor(255, 0, 0))
    painter = QtGui.QPainter(img)
    paint_descriptor(painter, desc, QtCore.QRectF(0, 0, 40, 30))
    painter.end()
    c = img.pixelColor(20, 15)
    assert (c.red(), c.green(), c.blue()) == (0, 0, 255)


def test_main_window_tabs(qapp, hot_payload):
    client = BackendClient(BackendConfig(url="", anon_key=""))
    w = MainWindow(AppConfig(), client)
    try:
        assert w.tabs.count() == 4

        w.liveTab.on_payload(hot_payload)
        assert w.liveTab.view.descriptor() is not None
        assert w.liveTab.current_render.analysis.hotspot is not None
        w.liveTab.on_status(FeedStatus.RECONNECTING, 2)
        assert w.liveTab.statusLabel.text() == "Reconnecting… (attempt 2)"

        w.alertsTab.set_alerts([
            AlertRow(id=1, ts="2025-01-01T00:00:00Z", alert_type="ammonia", message="Ammonia high"),
            AlertRow(id=2, ts="2025-01-01T01:00:00Z", alert_type="humidity", message="Humid"),
        ])
        assert w.alertsTab.list.count() == 2
        w.alertsTab.filterCombo.setCurrentText("critical")
        assert w.alertsTab.list.count() == 1

        w.historyTab.set_rows([ReadingRow(id=1, ts="2025-01-01T00:00:00Z", temp_c=25.0)], "Today")
        assert w.historyTab.table.rowCount() == 1
        assert w.historyTab.table.item(0, 2).text() == "25.00"
    finally:
        w.close()


def test_background_work_reports_unexpected_errors(qapp):
    sched = QtScheduler()
    errors = []

    def work():
        raise KeyError("missing")

    run_in_background(sched, work, lambda result: errors.append("done"), errors.append, name="test-io")
    assert _wait_until(lambda: len(errors) == 1)
    assert isinstance(errors[0], KeyError)


def test_live_tab_shows_latest_readings(qapp):
    client = BackendClient(BackendConfig(url="", anon_key=""))
    w = MainWindow(AppConfig(), client)
    try:
        rows = [
            ReadingRow(id=1, ts="2025-01-01T00:00:00Z", t_avg_c=24.0, humidity_rh=70.0, gas_res_ohm=9000.0),
            ReadingRow(id=2, ts="2025-01-01T00:05:00Z", t_avg_c=25.3, humidity_rh=68.5, gas_res_ohm=12345.0),
        ]
        w.liveTab.on_readings(latest_readings_summary(rows))
        assert w.liveTab.tempLabel.text() == "25.3 °C"
        assert w.liveTab.humidityLabel.text() == "68.5 %"
        assert w.liveTab.ammoniaLabel.text() == "12.3 kΩ"
        assert w.liveTab.readings.temperature == [24.0, 25.3]

        w.liveTab.on_readings(None)
        assert w.liveTab.tempLabel.text() == "25.3 °C"
    finally:
        w.close()
