"""
Data models for the order block sweep bot
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Candle:
    """OHLC candle keyed by its open time (unix seconds)"""
    open_time: int
    open: float
    high: float
    low: float
    close: float

    @property
    def is_valid(self) -> bool:
        """Check the OHLC ordering invariant"""
        return self.low <= min(self.open, self.close) <= max(self.open, self.close) <= self.high

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @classmethod
    def from_deriv(cls, payload: Dict[str, Any], granularity: Optional[int] = None) -> 'Candle':
        """Create Candle from a Deriv history candle or a live ohlc message.

        History candles carry their open time in ``epoch``. Live ``ohlc``
        messages carry it in ``open_time`` while their ``epoch`` is the time
        of the latest tick, and quote prices as strings.
        """
        if payload.get('open_time') is not None:
            open_time = int(payload['open_time'])
        else:
            open_time = int(payload['epoch'])

        if granularity:
            open_time -= open_time % granularity

        return cls(
            open_time=open_time,
            open=float(payload['open']),
            high=float(payload['high']),
            low=float(payload['low']),
            close=float(payload['close'])
        )

    @classmethod
    def from_row(cls, row) -> 'Candle':
        """Create Candle from a DataFrame row"""
        return cls(
            open_time=int(row['open_time']),
            open=float(row['open']),
            high=float(row['high']),
            low=float(row['low']),
            close=float(row['close'])
        )


@dataclass(frozen=True)
class SwingPoint:
    """Local extreme used as a structural pivot"""
    kind: str  # 'high' or 'low'
    price: float
    index: int
    time: int


@dataclass(frozen=True)
class Sweep:
    """Wick-only breach of a swing point with the close back inside"""
    kind: str  # 'bearish_sweep' (took a high) or 'bullish_sweep' (took a low)
    candle: Candle
    swing: SwingPoint

    @property
    def direction(self) -> str:
        return 'bearish' if self.kind == 'bearish_sweep' else 'bullish'


@dataclass(frozen=True)
class StructureBreak:
    """Candle close beyond a swing point"""
    kind: str  # 'bullish_break' or 'bearish_break'
    candle: Candle
    swing: SwingPoint


@dataclass(frozen=True)
class FVG:
    """Fair Value Gap between C1 and C3; candle is the impulse C2"""
    kind: str  # 'bullish_fvg' or 'bearish_fvg'
    top: float
    bottom: float
    candle: Candle


@dataclass(frozen=True)
class OrderBlock:
    """Last opposite-colored candle before an impulsive move"""
    kind: str  # 'bullish_ob' or 'bearish_ob'
    candle: Candle
    index: int

    @property
    def high(self) -> float:
        return max(self.candle.open, self.candle.close)

    @property
    def low(self) -> float:
        return min(self.candle.open, self.candle.close)


@dataclass(frozen=True)
class TradeRequest:
    """Trade the state machine asks the executor to place"""
    symbol: str
    direction: str  # 'buy' or 'sell'
    stop_loss: float
    entry_reference: float


@dataclass
class ExecutionResult:
    """Unified trade execution result"""
    contract_id: str
    symbol: str
    direction: str
    entry_price: float
    stop_loss: float
    take_profit: float
    status: str  # 'FILLED' / 'REJECTED'
    timestamp: datetime
    is_simulation: bool = False
    error_message: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        """Check if the trade was placed"""
        return self.status == 'FILLED' and self.error_message is None
