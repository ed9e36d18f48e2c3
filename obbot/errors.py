"""
Error types raised by the detection core, market data and execution layers
"""
from typing import Optional


class InsufficientData(ValueError):
    """Candle sequence is too short for the requested lookback"""

    def __init__(self, required: int, available: int, what: str = "detector"):
        self.required = required
        self.available = available
        super().__init__(f"{what} needs {required} candles, got {available}")


class MalformedCandle(ValueError):
    """Candle violates low <= min(open, close) <= max(open, close) <= high"""


class MarketUnavailable(RuntimeError):
    """Data source cannot serve an instrument (e.g. market closed)"""

    def __init__(self, symbol: str, reason: str = ""):
        self.symbol = symbol
        super().__init__(f"Market unavailable for {symbol}: {reason}" if reason else f"Market unavailable for {symbol}")


class ExecutionFailure(RuntimeError):
    """Trade executor rejected or failed to place a trade"""


class DerivAPIError(RuntimeError):
    """Error reply from the Deriv WebSocket API"""

    def __init__(self, code: str, message: str, msg_type: Optional[str] = None):
        self.code = code
        self.message = message
        self.msg_type = msg_type
        super().__init__(f"{code}: {message}")
