"""
Per-instrument setup state machine: Idle -> Swept -> StructureBroken -> trade
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

import pandas as pd

from config.models import StrategyConfig
from ..errors import InsufficientData
from ..models import FVG, Candle, OrderBlock, TradeRequest
from ..signals import (
    check_liquidity_sweep, check_ob_tap, check_structure_break,
    find_fvg, find_order_block, find_swing_points, latest_swing
)
from ..trend import is_aligned

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    """No setup pending"""

    stage = 'idle'


@dataclass(frozen=True)
class Swept:
    """A trend-aligned liquidity sweep was seen"""
    direction: str  # 'bearish' (took highs) or 'bullish' (took lows)
    sweep_candle: Candle
    created_at: float

    stage = 'swept'


@dataclass(frozen=True)
class StructureBroken:
    """Structure broke after the sweep; waiting for a tap into the OB"""
    direction: str
    sweep_candle: Candle
    created_at: float
    bos_candle: Candle
    order_block: OrderBlock
    fvg: FVG

    stage = 'structure_broken'


SetupState = Union[Idle, Swept, StructureBroken]

IDLE = Idle()


class SetupStateMachine:
    """Advances one instrument's pending setup on every closed candle.

    ``on_candle_close`` takes the closed candles (the forming one excluded)
    and the current trend, and returns a TradeRequest when the order block
    is tapped. The state is back to Idle by the time the request is
    returned, so a failed execution never resurrects the setup.
    """

    def __init__(self, symbol: str, strategy: StrategyConfig, pip_size: float,
                 clock: Callable[[], float] = time.time):
        self.symbol = symbol
        self.strategy = strategy
        self.pip_size = pip_size
        self.clock = clock
        self.state: SetupState = IDLE

    @property
    def stage(self) -> str:
        return self.state.stage

    @property
    def is_pending(self) -> bool:
        return not isinstance(self.state, Idle)

    def reset(self):
        self.state = IDLE

    def on_candle_close(self, closed: pd.DataFrame, trend: str) -> Optional[TradeRequest]:
        """Evaluate the setup against the latest closed candle"""
        if len(closed) == 0:
            return None

        try:
            if isinstance(self.state, Idle):
                self._check_sweep(closed, trend)
                return None

            if self._timed_out():
                logger.info(f"[{self.symbol}] Setup timed out in stage {self.stage}")
                self.reset()
                return None

            if isinstance(self.state, Swept):
                self._check_structure(closed, self.state)
                return None

            return self._check_tap(closed, self.state)

        except InsufficientData as e:
            logger.debug(f"[{self.symbol}] Skipping {self.stage} step: {e}")
            return None

    def _timed_out(self) -> bool:
        age = self.clock() - self.state.created_at
        return age >= self.strategy.setup_timeout_seconds

    def _check_sweep(self, closed: pd.DataFrame, trend: str):
        swings = find_swing_points(closed, self.strategy.swing_period)

        for kind in ('high', 'low'):
            swing = latest_swing(swings, kind)
            if swing is None:
                continue

            sweep = check_liquidity_sweep(closed, swing)
            if sweep is None:
                continue

            if not is_aligned(sweep.direction, trend):
                logger.info(
                    f"[{self.symbol}] Discarding counter-trend {sweep.kind} at {swing.price} "
                    f"(trend: {trend})"
                )
                continue

            logger.info(f"[{self.symbol}] Sweep detected! Type: {sweep.kind} of {swing.kind} {swing.price}")
            self.state = Swept(
                direction=sweep.direction,
                sweep_candle=sweep.candle,
                created_at=self.clock()
            )
            return

    def _check_structure(self, closed: pd.DataFrame, setup: Swept):
        window = closed.iloc[-self.strategy.bos_window:].reset_index(drop=True)
        swings = find_swing_points(window, self.strategy.bos_swing_period)

        target_kind = 'low' if setup.direction == 'bearish' else 'high'
        relevant = next((s for s in swings if s.kind == target_kind), None)
        if relevant is None:
            return

        bos = check_structure_break(closed, relevant)
        if bos is None:
            return

        order_block = find_order_block(closed, setup.direction, self.strategy.ob_depth)
        fvg = find_fvg(closed)

        if order_block is None or fvg is None:
            logger.info(
                f"[{self.symbol}] {bos.kind} without tradeable zone "
                f"(OB: {order_block is not None}, FVG: {fvg is not None}). Setup invalidated."
            )
            self.reset()
            return

        logger.info(
            f"[{self.symbol}] BoS detected after sweep! Stage: structure_broken, "
            f"OB {order_block.low}-{order_block.high}, {fvg.kind} {fvg.bottom}-{fvg.top}"
        )
        self.state = StructureBroken(
            direction=setup.direction,
            sweep_candle=setup.sweep_candle,
            created_at=setup.created_at,
            bos_candle=bos.candle,
            order_block=order_block,
            fvg=fvg
        )

    def _check_tap(self, closed: pd.DataFrame, setup: StructureBroken) -> Optional[TradeRequest]:
        candle = Candle.from_row(closed.iloc[-1])
        if not check_ob_tap(candle, setup.order_block):
            return None

        trade_direction = 'sell' if setup.direction == 'bearish' else 'buy'
        request = TradeRequest(
            symbol=self.symbol,
            direction=trade_direction,
            stop_loss=self.stop_loss_for(trade_direction, candle.close),
            entry_reference=candle.close
        )

        logger.info(f"[{self.symbol}] OB tapped! {trade_direction.upper()} with SL {request.stop_loss}")
        self.reset()
        return request

    def stop_loss_for(self, direction: str, reference: float) -> float:
        """Fixed pip distance from the reference price"""
        distance = self.strategy.stop_loss_pips * self.pip_size
        if direction == 'buy':
            return reference - distance
        return reference + distance
