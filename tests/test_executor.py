import sys
from pathlib import Path

# Ensure project root on sys.path before importing from obbot
sys.path.append(str(Path(__file__).resolve().parents[1]))

import asyncio

import pytest

from config.models import StrategyConfig
from obbot.core.executor import DerivExecutor, PaperExecutor, take_profit_for
from obbot.errors import DerivAPIError, ExecutionFailure


class FakeDerivClient:
    """Answers proposal and buy requests the way the Deriv API does"""

    def __init__(self, price=1.2500, reject=None):
        self.price = price
        self.reject = reject
        self.sent = []

    async def get_latest_price(self, symbol):
        return self.price

    async def send(self, request):
        self.sent.append(request)
        msg_type = next(iter(request))
        if msg_type == self.reject:
            raise DerivAPIError('InvalidContractProposal', 'Stop loss too close', msg_type)
        if msg_type == 'proposal':
            return {'msg_type': 'proposal', 'proposal': {'id': 'prop-1', 'ask_price': 10.0}}
        if msg_type == 'buy':
            return {'msg_type': 'buy', 'buy': {'contract_id': 987654, 'buy_price': 10.0}}
        raise AssertionError(f'unexpected request {request}')


def test_take_profit_is_twice_the_stop_distance():
    assert take_profit_for('buy', 1.2500, 1.2490, 2.0) == pytest.approx(1.2520)
    assert take_profit_for('sell', 1.2500, 1.2510, 2.0) == pytest.approx(1.2480)


def test_deriv_executor_buys_multup_with_limit_orders():
    client = FakeDerivClient(price=1.2500)
    executor = DerivExecutor(client, StrategyConfig())

    result = asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2490))

    proposal, buy = client.sent
    assert proposal['contract_type'] == 'MULTUP'
    assert proposal['amount'] == 10.0
    assert proposal['basis'] == 'stake'
    assert proposal['currency'] == 'USD'
    assert proposal['multiplier'] == 10
    assert proposal['limit_order']['stop_loss'] == pytest.approx(0.0010)
    assert proposal['limit_order']['take_profit'] == pytest.approx(0.0020)
    assert buy == {'buy': 'prop-1', 'price': 10.0}

    assert result.is_successful
    assert result.contract_id == '987654'
    assert result.take_profit == pytest.approx(1.2520)
    assert not result.is_simulation
    assert executor.open_positions == [result]
    assert executor.is_live


def test_deriv_executor_sell_uses_multdown():
    client = FakeDerivClient(price=150.00)
    executor = DerivExecutor(client, StrategyConfig())

    result = asyncio.run(executor.execute_trade('frxUSDJPY', 'sell', 150.10))

    assert client.sent[0]['contract_type'] == 'MULTDOWN'
    assert result.take_profit == pytest.approx(149.80)


@pytest.mark.parametrize('stage', ['proposal', 'buy'])
def test_deriv_rejection_becomes_execution_failure(stage):
    executor = DerivExecutor(FakeDerivClient(reject=stage), StrategyConfig())

    with pytest.raises(ExecutionFailure, match='Stop loss too close'):
        asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2490))
    assert executor.open_positions == []


def test_zero_stop_distance_is_rejected():
    executor = DerivExecutor(FakeDerivClient(price=1.2500), StrategyConfig())
    with pytest.raises(ExecutionFailure):
        asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2500))


def test_paper_executor_fills_at_lookup_price():
    prices = {'frxGBPUSD': 1.2500}
    executor = PaperExecutor(StrategyConfig(), price_lookup=prices.get)

    first = asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2490))
    second = asyncio.run(executor.execute_trade('frxGBPUSD', 'sell', 1.2510))

    assert [o.contract_id for o in executor.orders] == ['PAPER_000001', 'PAPER_000002']
    assert first.is_successful and first.is_simulation
    assert first.entry_price == 1.2500
    assert first.take_profit == pytest.approx(1.2520)
    assert second.take_profit == pytest.approx(1.2480)
    assert not executor.is_live


def test_paper_executor_rejects_without_price():
    executor = PaperExecutor(StrategyConfig())
    result = asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2490))
    assert result.status == 'REJECTED'
    assert not result.is_successful
    assert result.error_message == 'No price available'


class UnreachableClient(FakeDerivClient):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def send(self, request):
        if next(iter(request)) == 'buy':
            raise self.error
        return await super().send(request)


class MalformedBuyClient(FakeDerivClient):
    async def send(self, request):
        if next(iter(request)) == 'buy':
            return {'msg_type': 'buy'}
        return await super().send(request)


@pytest.mark.parametrize('client', [
    UnreachableClient(ConnectionError('Connection closed')),
    UnreachableClient(asyncio.TimeoutError()),
    MalformedBuyClient(),
])
def test_transport_and_reply_errors_become_execution_failure(client):
    executor = DerivExecutor(client, StrategyConfig())
    with pytest.raises(ExecutionFailure):
        asyncio.run(executor.execute_trade('frxGBPUSD', 'buy', 1.2490))
    assert executor.open_positions == []
