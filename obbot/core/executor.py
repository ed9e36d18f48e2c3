"""
Trade executor interface with Deriv multiplier and paper implementations
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from config.models import StrategyConfig
from ..errors import DerivAPIError, ExecutionFailure
from ..models import ExecutionResult
from .deriv_client import DerivClient

logger = logging.getLogger(__name__)


def take_profit_for(direction: str, entry: float, stop_loss: float, risk_reward: float) -> float:
    """Take profit at ``risk_reward`` times the stop distance"""
    distance = abs(entry - stop_loss) * risk_reward
    return entry + distance if direction == 'buy' else entry - distance


class TradeExecutor(ABC):
    """Abstract base class for trade executors"""

    @abstractmethod
    async def execute_trade(self, symbol: str, direction: str, stop_loss: float) -> ExecutionResult:
        """Place a trade; raise ExecutionFailure when it cannot be placed"""
        pass

    @property
    @abstractmethod
    def is_live(self) -> bool:
        """Whether trades reach the broker"""
        pass


class DerivExecutor(TradeExecutor):
    """Buys Deriv multiplier contracts (MULTUP / MULTDOWN) via proposal + buy"""

    def __init__(self, client: DerivClient, strategy: StrategyConfig):
        self.client = client
        self.strategy = strategy
        self.open_positions: List[ExecutionResult] = []

    async def execute_trade(self, symbol: str, direction: str, stop_loss: float) -> ExecutionResult:
        logger.info(f"Executing {direction.upper()} on {symbol}")

        try:
            current_price = await self.client.get_latest_price(symbol)

            sl_distance = abs(current_price - stop_loss)
            if sl_distance == 0:
                raise ExecutionFailure(f"Stop loss {stop_loss} equals current price for {symbol}")
            tp_distance = sl_distance * self.strategy.risk_reward
            take_profit = take_profit_for(direction, current_price, stop_loss, self.strategy.risk_reward)

            logger.info(f"Entry: {current_price}, SL: {stop_loss}, TP: {take_profit}")

            proposal = await self.client.send({
                'proposal': 1,
                'amount': self.strategy.stake,
                'basis': 'stake',
                'contract_type': 'MULTUP' if direction == 'buy' else 'MULTDOWN',
                'currency': self.strategy.currency,
                'symbol': symbol,
                'limit_order': {
                    'stop_loss': sl_distance,
                    'take_profit': tp_distance
                },
                'multiplier': self.strategy.multiplier
            })

            proposal_id = (proposal.get('proposal') or {}).get('id')
            if not proposal_id:
                raise ExecutionFailure(f"No proposal returned for {symbol}")

            order = await self.client.send({
                'buy': proposal_id,
                'price': proposal['proposal']['ask_price']
            })
            contract_id = str(order['buy']['contract_id'])

        except DerivAPIError as e:
            raise ExecutionFailure(f"Deriv rejected {direction} on {symbol}: {e}") from e
        except (ConnectionError, asyncio.TimeoutError) as e:
            raise ExecutionFailure(f"Deriv unreachable for {direction} on {symbol}: {e!r}") from e
        except (KeyError, TypeError) as e:
            raise ExecutionFailure(f"Unexpected Deriv reply for {direction} on {symbol}: {e!r}") from e

        logger.info(f"Order Placed: ID {contract_id}")

        result = ExecutionResult(
            contract_id=contract_id,
            symbol=symbol,
            direction=direction,
            entry_price=current_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            status='FILLED',
            timestamp=datetime.now()
        )
        self.open_positions.append(result)
        return result

    @property
    def is_live(self) -> bool:
        return True


class PaperExecutor(TradeExecutor):
    """Records simulated trades at the latest known price"""

    def __init__(self, strategy: StrategyConfig,
                 price_lookup: Optional[Callable[[str], Optional[float]]] = None):
        self.strategy = strategy
        self.price_lookup = price_lookup
        self.orders: List[ExecutionResult] = []
        self.order_counter = 0

    async def execute_trade(self, symbol: str, direction: str, stop_loss: float) -> ExecutionResult:
        self.order_counter += 1
        order_id = f"PAPER_{self.order_counter:06d}"

        price = self.price_lookup(symbol) if self.price_lookup else None
        if price is None:
            result = ExecutionResult(
                contract_id=order_id,
                symbol=symbol,
                direction=direction,
                entry_price=0.0,
                stop_loss=stop_loss,
                take_profit=0.0,
                status='REJECTED',
                timestamp=datetime.now(),
                is_simulation=True,
                error_message="No price available"
            )
        else:
            result = ExecutionResult(
                contract_id=order_id,
                symbol=symbol,
                direction=direction,
                entry_price=price,
                stop_loss=stop_loss,
                take_profit=take_profit_for(direction, price, stop_loss, self.strategy.risk_reward),
                status='FILLED',
                timestamp=datetime.now(),
                is_simulation=True
            )

        logger.info(f"Paper {direction.upper()} on {symbol}: {result.status} at {result.entry_price}")
        self.orders.append(result)
        return result

    @property
    def is_live(self) -> bool:
        return False
