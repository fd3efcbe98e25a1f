import os

# GUI tests render without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pytest

from swinetrack.payload import ThermalPayload
from swinetrack.scheduling import EventLoop


class FakeClock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loop(clock):
    return EventLoop(clock=clock)


def make_payload(width=32, height=24, fill=20.0, hot=None, hot_value=40.0) -> ThermalPayload:
    samples = np.full(width * height, fill, dtype=np.float64)
    if hot is not None:
        x, y = hot
        samples[y * width + x] = hot_value
    return ThermalPayload(width=width, height=height, samples=samples)


@pytest.fixture
def hot_payload():
    return make_payload(hot=(16, 12))


@pytest.fixture
def payload_factory():
    return make_payload
