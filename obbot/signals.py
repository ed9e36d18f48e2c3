"""
Smart Money Concepts detection functions for the sweep -> BoS -> OB setup

Every detector takes a DataFrame with ``open_time, open, high, low, close``
columns and a positional index, and returns None (or an empty list) when
nothing is found. Frames shorter than a detector's lookback raise
InsufficientData.
"""
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from .errors import InsufficientData
from .models import FVG, Candle, OrderBlock, StructureBreak, SwingPoint, Sweep

OHLC_COLUMNS = ['open_time', 'open', 'high', 'low', 'close']


def candles_to_dataframe(candles: Iterable[Candle]) -> pd.DataFrame:
    """Convert candles to a DataFrame for the detection functions"""
    data = [
        {
            'open_time': c.open_time,
            'open': float(c.open),
            'high': float(c.high),
            'low': float(c.low),
            'close': float(c.close)
        }
        for c in candles
    ]
    df = pd.DataFrame(data, columns=OHLC_COLUMNS)
    df['open_time'] = df['open_time'].astype('int64')
    for col in ['open', 'high', 'low', 'close']:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    return df


def _require(df: pd.DataFrame, count: int, what: str) -> None:
    if len(df) < count:
        raise InsufficientData(count, len(df), what)


def find_swing_points(df: pd.DataFrame, period: int = 3) -> List[SwingPoint]:
    """Detect swing highs/lows with a strict symmetric neighborhood.

    A candle is a swing high iff its high is strictly greater than the high
    of every candle within ``period`` positions on both sides; equal
    neighbors disqualify it, so flat tops never register. Swing lows mirror
    this on the lows. At most one swing is returned per index.
    """
    _require(df, 2 * period + 1, 'find_swing_points')

    highs = df['high'].to_numpy(dtype=float)
    lows = df['low'].to_numpy(dtype=float)
    times = df['open_time'].to_numpy()
    swings: List[SwingPoint] = []

    for i in range(period, len(df) - period):
        neighbor_highs = np.concatenate((highs[i - period:i], highs[i + 1:i + period + 1]))
        neighbor_lows = np.concatenate((lows[i - period:i], lows[i + 1:i + period + 1]))

        # An outside bar qualifies both ways; it is reported as a high only
        if highs[i] > neighbor_highs.max():
            swings.append(SwingPoint('high', float(highs[i]), i, int(times[i])))
        elif lows[i] < neighbor_lows.min():
            swings.append(SwingPoint('low', float(lows[i]), i, int(times[i])))

    return swings


def latest_swing(swings: List[SwingPoint], kind: str) -> Optional[SwingPoint]:
    """Most recent swing of the given kind"""
    for swing in reversed(swings):
        if swing.kind == kind:
            return swing
    return None


def check_liquidity_sweep(df: pd.DataFrame, swing: SwingPoint) -> Optional[Sweep]:
    """Check whether the last candle swept the swing: wick through, close back inside"""
    _require(df, 1, 'check_liquidity_sweep')
    last = df.iloc[-1]

    if swing.kind == 'high':
        if last['high'] > swing.price and last['close'] < swing.price:
            return Sweep('bearish_sweep', Candle.from_row(last), swing)
    elif swing.kind == 'low':
        if last['low'] < swing.price and last['close'] > swing.price:
            return Sweep('bullish_sweep', Candle.from_row(last), swing)

    return None


def check_structure_break(df: pd.DataFrame, swing: SwingPoint) -> Optional[StructureBreak]:
    """Check whether the last candle closed beyond the swing"""
    _require(df, 1, 'check_structure_break')
    last = df.iloc[-1]

    if swing.kind == 'high':
        if last['close'] > swing.price:
            return StructureBreak('bullish_break', Candle.from_row(last), swing)
    elif swing.kind == 'low':
        if last['close'] < swing.price:
            return StructureBreak('bearish_break', Candle.from_row(last), swing)

    return None


def find_fvg(df: pd.DataFrame) -> Optional[FVG]:
    """Detect a Fair Value Gap over the last three candles.

    Bullish is checked before bearish, so bullish wins if both could hold.
    """
    _require(df, 3, 'find_fvg')
    c1, c2, c3 = df.iloc[-3], df.iloc[-2], df.iloc[-1]

    # Bullish FVG: gap up between C1 high and C3 low
    if c1['high'] < c3['low']:
        return FVG(
            kind='bullish_fvg',
            top=float(c3['low']),
            bottom=float(c1['high']),
            candle=Candle.from_row(c2)
        )

    # Bearish FVG: gap down between C3 high and C1 low
    if c1['low'] > c3['high']:
        return FVG(
            kind='bearish_fvg',
            top=float(c1['low']),
            bottom=float(c3['high']),
            candle=Candle.from_row(c2)
        )

    return None


def find_order_block(df: pd.DataFrame, direction: str, depth: int = 10) -> Optional[OrderBlock]:
    """Find the last opposite-colored candle before the impulse.

    Scans backward from the second-to-last candle, at most ``depth``
    candles. A bullish OB is a down candle, a bearish OB an up candle.
    """
    _require(df, 2, 'find_order_block')
    start = len(df) - 2
    stop = max(start - depth, -1)

    for i in range(start, stop, -1):
        row = df.iloc[i]
        is_green = row['close'] > row['open']

        if direction == 'bullish' and not is_green:
            return OrderBlock('bullish_ob', Candle.from_row(row), i)
        if direction == 'bearish' and is_green:
            return OrderBlock('bearish_ob', Candle.from_row(row), i)

    return None


def check_ob_tap(candle: Candle, order_block: OrderBlock) -> bool:
    """Check if the candle's wick revisited the order block body range"""
    ob_high = order_block.high
    ob_low = order_block.low

    if order_block.kind == 'bullish_ob':
        # Price needs to dip into the OB range
        return ob_low <= candle.low <= ob_high
    # Bearish OB: price needs to rally into the OB range
    return ob_low <= candle.high <= ob_high
