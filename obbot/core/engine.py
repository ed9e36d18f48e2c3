"""
Strategy engine: one isolated worker per instrument fed by the live candle stream
"""
import asyncio
import inspect
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from config.models import AppConfig, InstrumentConfig, StrategyConfig
from ..candle_buffer import CandleBuffer
from ..errors import MalformedCandle, MarketUnavailable
from ..models import Candle, ExecutionResult, TradeRequest
from ..signals import candles_to_dataframe
from ..trend import TrendContext
from .executor import TradeExecutor
from .market_data import MarketDataSource
from .setup_machine import SetupStateMachine

logger = logging.getLogger(__name__)

TradeCallback = Callable[[ExecutionResult], Any]


class InstrumentWorker:
    """Owns the candle buffer, trend context and setup machine of one instrument.

    Updates go through a single-consumer queue, so candles are processed in
    delivery order and a closed candle is fully handled (trade execution
    included) before the next update is looked at.
    """

    def __init__(self, instrument: InstrumentConfig, strategy: StrategyConfig,
                 source: MarketDataSource, executor: TradeExecutor,
                 clock: Callable[[], float] = time.time):
        self.config = instrument
        self.symbol = instrument.symbol
        self.strategy = strategy
        self.source = source
        self.executor = executor

        self.buffer = CandleBuffer(strategy.buffer_size)
        self.trend = TrendContext(strategy.trend_refresh_every, strategy.trend_lookback)
        self.machine = SetupStateMachine(self.symbol, strategy, instrument.get_pip_size(), clock)

        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None
        self.refresh_task: Optional[asyncio.Task] = None

        self.trade_callbacks: List[TradeCallback] = []

        self.status = 'stopped'
        self.last_error: Optional[str] = None
        self.last_update: Optional[datetime] = None
        self.trades_executed = 0

    async def initialize(self):
        """Load HTF trend and LTF history, then subscribe to live candles"""
        self.status = 'starting'

        htf = await self.source.fetch_historical_candles(
            self.symbol, self.strategy.analysis_granularity, self.strategy.history_count
        )
        self.trend.update(candles_to_dataframe(htf))
        logger.info(f"[{self.symbol}] HTF trend: {self.trend.value}")

        ltf = await self.source.fetch_historical_candles(
            self.symbol, self.strategy.execution_granularity, self.strategy.history_count
        )
        loaded = self.buffer.load_history(ltf)
        logger.info(f"[{self.symbol}] Loaded {loaded} LTF candles")

        await self.source.subscribe_candle_updates(
            self.symbol, self.strategy.execution_granularity, self.on_update
        )

        self.task = asyncio.create_task(self._run())
        self.status = 'running'

    async def stop(self):
        for task in (self.task, self.refresh_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self.status = 'stopped'
        logger.info(f"Stopped worker for {self.symbol}")

    def on_update(self, candle: Candle):
        """Live feed callback; only enqueues"""
        self.queue.put_nowait(candle)

    async def _run(self):
        while True:
            candle = await self.queue.get()
            try:
                await self.handle_update(candle)
            except Exception as e:
                logger.error(f"[{self.symbol}] Error handling candle update: {e}")
                self.last_error = str(e)
            finally:
                self.queue.task_done()

    async def handle_update(self, candle: Candle) -> Optional[ExecutionResult]:
        """Apply one candle snapshot; step the setup when a candle closes"""
        try:
            closed = self.buffer.upsert(candle)
        except MalformedCandle as e:
            logger.warning(f"[{self.symbol}] Rejected candle: {e}")
            return None

        self.last_update = datetime.now()
        if closed is None:
            return None

        logger.info(f"[{self.symbol}] Candle closed: {closed.open_time}")

        if self.trend.on_candle_close():
            self.schedule_trend_refresh()

        request = self.machine.on_candle_close(self.buffer.closed_frame(), self.trend.value)
        if request is None:
            return None

        return await self._execute(request)

    async def _execute(self, request: TradeRequest) -> Optional[ExecutionResult]:
        # The setup is already cleared; a failure here does not bring it back
        try:
            result = await self.executor.execute_trade(request.symbol, request.direction, request.stop_loss)
        except Exception as e:
            logger.error(f"[{self.symbol}] Trade execution failed: {e}")
            self.last_error = str(e)
            return None

        if result.is_successful:
            self.trades_executed += 1
            logger.info(f"[{self.symbol}] Trade executed: {result.direction.upper()} {result.contract_id}")
        else:
            logger.warning(f"[{self.symbol}] Trade not filled: {result.error_message or result.status}")

        await self._notify_trade_callbacks(result)
        return result

    def schedule_trend_refresh(self):
        if self.refresh_task and not self.refresh_task.done():
            logger.debug(f"[{self.symbol}] Trend refresh already in flight")
            return
        self.refresh_task = asyncio.create_task(self.refresh_trend())

    async def refresh_trend(self) -> str:
        """Fetch HTF candles and replace the trend; keeps the old value on failure"""
        try:
            htf = await self.source.fetch_historical_candles(
                self.symbol, self.strategy.analysis_granularity, self.strategy.history_count
            )
        except Exception as e:
            logger.warning(f"[{self.symbol}] Trend refresh failed, keeping {self.trend.value}: {e}")
            return self.trend.value
        return self.trend.update(candles_to_dataframe(htf))

    def add_trade_callback(self, callback: TradeCallback):
        """Add callback for execution results (sync or async)"""
        self.trade_callbacks.append(callback)

    async def _notify_trade_callbacks(self, result: ExecutionResult):
        for callback in self.trade_callbacks:
            try:
                outcome = callback(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"[{self.symbol}] Error in trade callback: {e}")

    def get_last_price(self) -> Optional[float]:
        last = self.buffer.last
        return last.close if last else None

    def get_status(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'name': self.config.name,
            'status': self.status,
            'stage': self.machine.stage,
            'trend': self.trend.value,
            'candles': len(self.buffer),
            'last_price': self.get_last_price(),
            'trades_executed': self.trades_executed,
            'last_update': self.last_update.isoformat() if self.last_update else None,
            'last_error': self.last_error
        }


class StrategyEngine:
    """Runs one InstrumentWorker per enabled instrument"""

    def __init__(self, source: MarketDataSource, executor: TradeExecutor, config: AppConfig,
                 clock: Callable[[], float] = time.time):
        self.source = source
        self.executor = executor
        self.config = config
        self.clock = clock

        self.workers: Dict[str, InstrumentWorker] = {}
        self.skipped: Dict[str, str] = {}
        self.trade_callbacks: List[TradeCallback] = []
        self._heartbeat_task: Optional[asyncio.Task] = None

    async def start(self) -> int:
        """Initialize every enabled instrument; failures only skip that instrument"""
        logger.info("Starting Strategy Engine...")

        for instrument in self.config.get_enabled_instruments():
            symbol = instrument.symbol
            logger.info(f"Initializing {symbol}...")
            worker = InstrumentWorker(instrument, self.config.strategy, self.source, self.executor, self.clock)
            for callback in self.trade_callbacks:
                worker.add_trade_callback(callback)

            try:
                await worker.initialize()
            except MarketUnavailable as e:
                logger.warning(f"Market is closed for {symbol}. Skipping... ({e})")
                self.skipped[symbol] = str(e)
                await worker.stop()
                continue
            except Exception as e:
                logger.error(f"Failed to initialize {symbol}: {e}")
                self.skipped[symbol] = str(e)
                await worker.stop()
                continue

            self.workers[symbol] = worker

        if self.config.heartbeat_interval > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        logger.info(f"Engine running {len(self.workers)} instruments, skipped {len(self.skipped)}")
        return len(self.workers)

    async def stop(self):
        logger.info("Stopping Strategy Engine")
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        await asyncio.gather(*(w.stop() for w in self.workers.values()), return_exceptions=True)
        self.workers.clear()

    async def _heartbeat_loop(self):
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            self.log_status()

    def log_status(self):
        for status in self.get_all_statuses().values():
            logger.info(
                f"[{status['symbol']}] stage={status['stage']} trend={status['trend']} "
                f"candles={status['candles']} price={status['last_price']} trades={status['trades_executed']}"
            )

    def add_trade_callback(self, callback: TradeCallback):
        """Add callback for execution results; applies to workers started afterwards too"""
        self.trade_callbacks.append(callback)
        for worker in self.workers.values():
            worker.add_trade_callback(callback)

    def get_last_price(self, symbol: str) -> Optional[float]:
        worker = self.workers.get(symbol)
        return worker.get_last_price() if worker else None

    def get_status(self, symbol: str) -> Optional[Dict[str, Any]]:
        worker = self.workers.get(symbol)
        return worker.get_status() if worker else None

    def get_all_statuses(self) -> Dict[str, Dict[str, Any]]:
        return {symbol: worker.get_status() for symbol, worker in self.workers.items()}
