"""
Higher timeframe trend context used to gate sweeps
"""
import logging
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

BULLISH = 'bullish'
BEARISH = 'bearish'
RANGING = 'ranging'
UNKNOWN = 'unknown'


def classify_trend(htf_df: pd.DataFrame, lookback: int = 10) -> str:
    """Compare the last close with the close ``lookback`` candles back"""
    if len(htf_df) < lookback:
        return UNKNOWN

    last_close = float(htf_df['close'].iloc[-1])
    prev_close = float(htf_df['close'].iloc[-lookback])

    if last_close > prev_close:
        return BULLISH
    if last_close < prev_close:
        return BEARISH
    return RANGING


class TrendContext:
    """Current HTF trend for one instrument plus its refresh cadence.

    The value is replaced wholesale by ``update``; the closed-candle counter
    decides when the engine should fetch fresh HTF candles.
    """

    def __init__(self, refresh_every: int = 12, lookback: int = 10):
        if refresh_every < 1:
            raise ValueError(f"refresh_every must be positive, got {refresh_every}")
        self.refresh_every = refresh_every
        self.lookback = lookback
        self.value = UNKNOWN
        self.closed_candles = 0

    def update(self, htf_df: pd.DataFrame) -> str:
        previous = self.value
        self.value = classify_trend(htf_df, self.lookback)
        if previous != self.value:
            logger.info(f"Trend changed: {previous} -> {self.value}")
        return self.value

    def on_candle_close(self) -> bool:
        """Count a closed LTF candle; True when a refresh is due"""
        self.closed_candles += 1
        return self.closed_candles % self.refresh_every == 0


def is_aligned(sweep_direction: Optional[str], trend: str) -> bool:
    """Bearish sweeps need a bearish trend, bullish sweeps a bullish one"""
    return sweep_direction in (BULLISH, BEARISH) and sweep_direction == trend
