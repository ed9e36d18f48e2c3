"""
Market data source interface and the Deriv implementation
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from ..errors import DerivAPIError, MarketUnavailable
from ..models import Candle
from .deriv_client import DerivClient

logger = logging.getLogger(__name__)

MARKET_CLOSED_CODES = ('MarketIsClosed', 'MarketIsClosedTryVolatility', 'InvalidSymbol')


class MarketDataSource(ABC):
    """Abstract base class for candle sources"""

    @abstractmethod
    async def fetch_historical_candles(self, symbol: str, granularity: int, count: int) -> List[Candle]:
        """Fetch historical candles, oldest first"""
        pass

    @abstractmethod
    async def subscribe_candle_updates(self, symbol: str, granularity: int,
                                       on_update: Callable[[Candle], None]) -> None:
        """Deliver in-progress and newly opened candle snapshots to on_update"""
        pass


class DerivMarketData(MarketDataSource):
    """Candle source backed by a connected DerivClient"""

    def __init__(self, client: DerivClient):
        self.client = client

    async def fetch_historical_candles(self, symbol: str, granularity: int, count: int) -> List[Candle]:
        try:
            raw = await self.client.get_candles(symbol, granularity, count)
        except DerivAPIError as e:
            if e.code in MARKET_CLOSED_CODES:
                raise MarketUnavailable(symbol, e.message) from e
            raise

        candles = [Candle.from_deriv(item, granularity) for item in raw]
        logger.debug(f"Fetched {len(candles)} candles for {symbol} @ {granularity}s")
        return candles

    async def subscribe_candle_updates(self, symbol: str, granularity: int,
                                       on_update: Callable[[Candle], None]) -> None:
        def _on_ohlc(ohlc: Dict[str, Any]):
            try:
                candle = Candle.from_deriv(ohlc, granularity)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Unparseable ohlc update for {symbol}: {e}")
                return
            on_update(candle)

        try:
            await self.client.subscribe_candles(symbol, granularity, _on_ohlc)
        except DerivAPIError as e:
            if e.code in MARKET_CLOSED_CODES:
                raise MarketUnavailable(symbol, e.message) from e
            raise

        logger.info(f"Subscribed to {granularity}s candles for {symbol}")
