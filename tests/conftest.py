import sys
from pathlib import Path

# Ensure project root on sys.path before importing project packages
sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from obbot.models import Candle

GRANULARITY = 300

# (open, high, low, close) on 5m candles:
#  3  swing low at 100 (period 3)
#  6  swing high at 105 (period 2)
#  8  sweeps the 100 low and closes back above it
# 11  last down candle before the impulse -> bullish OB [101.0, 101.2]
# 13  closes above 105 -> bullish break, FVG between 11.high and 13.low
# 15  dips to 101.1 -> taps the OB
BULLISH_SETUP = [
    (105.0, 106.0, 104.0, 105.5),
    (105.5, 106.0, 103.0, 104.0),
    (104.0, 104.5, 102.0, 102.5),
    (102.5, 103.0, 100.0, 101.0),
    (101.5, 103.0, 101.0, 102.5),
    (102.5, 104.0, 102.0, 103.5),
    (103.5, 105.0, 103.0, 104.5),
    (104.5, 104.8, 101.5, 102.0),
    (102.0, 102.5, 99.5, 100.5),
    (100.5, 102.0, 100.2, 101.8),
    (101.8, 102.2, 101.0, 101.2),
    (101.2, 101.5, 100.8, 101.0),
    (101.0, 104.0, 100.9, 103.8),
    (103.8, 106.0, 102.0, 105.5),
    (105.5, 106.2, 103.5, 104.0),
    (104.0, 104.2, 101.1, 101.6),
    (101.6, 102.0, 101.4, 101.8),
]

SWEEP_INDEX = 8
BREAK_INDEX = 13
TAP_INDEX = 15


def make_candles(rows, start: int = 0, step: int = GRANULARITY):
    return [Candle(start + i * step, o, h, l, c) for i, (o, h, l, c) in enumerate(rows)]


def mirror_rows(rows, axis: float = 200.0):
    """Reflect prices around axis: highs become lows, up candles become down candles"""
    return [(axis - o, axis - l, axis - h, axis - c) for o, h, l, c in rows]


def trending_htf(direction: str, count: int = 12, start: int = 0):
    """HTF candles whose last close is above (bullish) or below (bearish) the close 10 back"""
    rows = []
    for i in range(count):
        price = 100.0 + i if direction == 'bullish' else 100.0 - i
        if direction == 'ranging':
            price = 100.0
        rows.append((price, price + 0.5, price - 0.5, price))
    return make_candles(rows, start=start, step=3600)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def bullish_candles():
    return make_candles(BULLISH_SETUP)


@pytest.fixture
def bearish_candles():
    return make_candles(mirror_rows(BULLISH_SETUP))


@pytest.fixture
def clock():
    return FakeClock()
