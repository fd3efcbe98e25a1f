import threading

from swinetrack.scheduling import FRAME_INTERVAL, EventLoop, FrameCoalescer


def test_call_later_waits_for_clock(loop, clock):
    ran = []
    loop.call_later(1.0, lambda: ran.append("a"))
    loop.call_later(0.5, lambda: ran.append("b"))
    assert loop.run_pending() == 0
    clock.advance(0.5)
    loop.run_pending()
    assert ran == ["b"]
    clock.advance(0.5)
    loop.run_pending()
    assert ran == ["b", "a"]


def test_cancelled_timer_does_not_run(loop, clock):
    ran = []
    handle = loop.call_later(1.0, lambda: ran.append(1))
    handle.cancel()
    clock.advance(2.0)
    assert loop.run_pending() == 0
    assert ran == []
    assert loop.next_deadline() is None


def test_threadsafe_callbacks_run_on_loop(loop):
    ran = []
    t = threading.Thread(target=lambda: loop.call_soon_threadsafe(lambda: ran.append(threading.current_thread().name)))
    t.start()
    t.join()
    assert ran == []
    loop.run_pending()
    assert ran == [threading.current_thread().name]


def test_failing_callback_does_not_stop_loop(loop, caplog):
    ran = []

    def boom():
        raise RuntimeError("boom")

    loop.call_soon(boom)
    loop.call_soon(lambda: ran.append(1))
    assert loop.run_pending() == 2
    assert ran == [1]
    assert "Scheduled callback failed" in caplog.text


def test_run_forever_until_stop():
    loop = EventLoop()
    ran = []
    loop.call_later(0.01, lambda: ran.append(1))
    loop.call_later(0.02, loop.stop)
    loop.run_forever()
    assert ran == [1]


def test_coalescer_renders_latest_once_per_frame(loop, clock):
    rendered = []
    c = FrameCoalescer(rendered.append, loop.request_frame)
    for i in range(5):
        c.submit(i)
    assert c.pending
    loop.run_pending()
    assert rendered == []
    clock.advance(FRAME_INTERVAL)
    loop.run_pending()
    assert rendered == [4]
    assert c.dropped == 4
    assert not c.pending

    clock.advance(FRAME_INTERVAL)
    loop.run_pending()
    assert rendered == [4]


def test_coalescer_cancel_drops_pending(loop, clock):
    rendered = []
    c = FrameCoalescer(rendered.append, loop.request_frame)
    c.submit("a")
    c.cancel()
    c.submit("b")
    clock.advance(1.0)
    loop.run_pending()
    assert rendered == []
    assert not c.pending
