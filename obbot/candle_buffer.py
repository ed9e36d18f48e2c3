"""
Bounded, time-ordered candle buffer for one instrument and timeframe
"""
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

import pandas as pd

from .errors import MalformedCandle
from .models import Candle
from .signals import candles_to_dataframe

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200


class CandleBuffer:
    """Keeps the latest candles; the last entry is the one still forming"""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 2:
            raise ValueError(f"Buffer capacity must be at least 2, got {capacity}")
        self.capacity = capacity
        self._candles: Deque[Candle] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._candles)

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def candles(self) -> List[Candle]:
        return list(self._candles)

    def upsert(self, candle: Candle) -> Optional[Candle]:
        """Insert or update a candle.

        Returns the candle that just closed when ``candle`` opens a new
        period, otherwise None. A candle with the same open time as the last
        entry replaces it in place; an older one is ignored.
        """
        if not candle.is_valid:
            raise MalformedCandle(f"Invalid OHLC ordering: {candle}")

        if not self._candles:
            self._candles.append(candle)
            return None

        last = self._candles[-1]

        if candle.open_time == last.open_time:
            self._candles[-1] = candle
            return None

        if candle.open_time < last.open_time:
            logger.debug(f"Ignoring stale candle {candle.open_time} (last is {last.open_time})")
            return None

        # deque(maxlen) evicts the oldest entry on overflow
        self._candles.append(candle)
        return last

    def load_history(self, candles: Iterable[Candle]) -> int:
        """Seed the buffer from a historical back-fill.

        Malformed candles are dropped, duplicates keep the latest copy, and
        the result is ordered by open time and capped at capacity.
        """
        by_time = {}
        for candle in candles:
            if not candle.is_valid:
                logger.warning(f"Dropping malformed history candle: {candle}")
                continue
            by_time[candle.open_time] = candle

        for candle in self._candles:
            by_time.setdefault(candle.open_time, candle)

        ordered = [by_time[t] for t in sorted(by_time)]
        self._candles = deque(ordered[-self.capacity:], maxlen=self.capacity)
        return len(self._candles)

    def frame(self) -> pd.DataFrame:
        """All candles, including the forming one"""
        return candles_to_dataframe(self._candles)

    def closed_frame(self) -> pd.DataFrame:
        """Every candle except the one still forming"""
        return candles_to_dataframe(list(self._candles)[:-1])
