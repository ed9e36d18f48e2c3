import sys
from pathlib import Path

# Ensure project root on sys.path before importing from obbot
sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from conftest import BREAK_INDEX, BULLISH_SETUP, SWEEP_INDEX, TAP_INDEX, FakeClock, make_candles
from config.models import StrategyConfig, default_pip_size
from obbot.core.setup_machine import Idle, SetupStateMachine, StructureBroken, Swept
from obbot.signals import candles_to_dataframe


def closed_frame(candles, index):
    return candles_to_dataframe(candles[:index + 1])


def make_machine(clock=None, symbol='frxGBPUSD'):
    return SetupStateMachine(symbol, StrategyConfig(), default_pip_size(symbol), clock or FakeClock())


def run_through(machine, candles, trend, last_index):
    stages, requests = [], []
    for i in range(last_index + 1):
        request = machine.on_candle_close(closed_frame(candles, i), trend)
        stages.append(machine.stage)
        if request is not None:
            requests.append((i, request))
    return stages, requests


def test_bullish_sweep_break_tap_executes_buy(bullish_candles):
    machine = make_machine()
    stages, requests = run_through(machine, bullish_candles, 'bullish', TAP_INDEX)

    assert stages[:SWEEP_INDEX] == ['idle'] * SWEEP_INDEX
    assert stages[SWEEP_INDEX:BREAK_INDEX] == ['swept'] * (BREAK_INDEX - SWEEP_INDEX)
    assert stages[BREAK_INDEX:TAP_INDEX] == ['structure_broken'] * (TAP_INDEX - BREAK_INDEX)
    assert stages[TAP_INDEX] == 'idle'

    assert len(requests) == 1
    index, request = requests[0]
    assert index == TAP_INDEX
    assert request.symbol == 'frxGBPUSD'
    assert request.direction == 'buy'
    assert request.entry_reference == 101.6
    assert request.stop_loss == pytest.approx(101.6 - 10 * 0.0001)


def test_structure_broken_carries_bearish_colored_ob_and_bullish_fvg(bullish_candles):
    machine = make_machine()
    run_through(machine, bullish_candles, 'bullish', BREAK_INDEX)

    state = machine.state
    assert isinstance(state, StructureBroken)
    assert state.direction == 'bullish'
    assert state.sweep_candle.open_time == SWEEP_INDEX * 300
    assert state.bos_candle.open_time == BREAK_INDEX * 300
    assert state.order_block.kind == 'bullish_ob'
    assert not state.order_block.candle.is_bullish
    assert (state.order_block.low, state.order_block.high) == (101.0, 101.2)
    assert state.fvg.kind == 'bullish_fvg'
    assert (state.fvg.bottom, state.fvg.top) == (101.5, 102.0)


def test_bearish_mirror_executes_sell(bearish_candles):
    machine = make_machine()
    stages, requests = run_through(machine, bearish_candles, 'bearish', TAP_INDEX)

    assert stages[SWEEP_INDEX] == 'swept'
    assert stages[BREAK_INDEX] == 'structure_broken'
    assert len(requests) == 1
    _, request = requests[0]
    assert request.direction == 'sell'
    assert request.stop_loss == pytest.approx(request.entry_reference + 10 * 0.0001)


def test_counter_trend_sweep_is_discarded(bullish_candles):
    machine = make_machine()
    stages, requests = run_through(machine, bullish_candles, 'bearish', BREAK_INDEX)
    assert set(stages) == {'idle'}
    assert requests == []


@pytest.mark.parametrize('trend', ['ranging', 'unknown'])
def test_no_setup_without_directional_trend(bullish_candles, trend):
    machine = make_machine()
    stages, requests = run_through(machine, bullish_candles, trend, len(bullish_candles) - 1)
    assert set(stages) == {'idle'}
    assert requests == []


def test_new_sweep_ignored_while_pending():
    rows = list(BULLISH_SETUP)
    rows[SWEEP_INDEX + 1] = (100.5, 101.0, 99.0, 100.4)  # sweeps the 100 low again
    candles = make_candles(rows)

    # On its own the replacement candle is a valid sweep
    fresh = make_machine()
    fresh.on_candle_close(closed_frame(candles, SWEEP_INDEX + 1), 'bullish')
    assert fresh.state.sweep_candle.open_time == (SWEEP_INDEX + 1) * 300

    clock = FakeClock(50.0)
    machine = make_machine(clock)
    run_through(machine, candles, 'bullish', SWEEP_INDEX)
    first = machine.state

    clock.now = 100.0
    machine.on_candle_close(closed_frame(candles, SWEEP_INDEX + 1), 'bullish')
    assert machine.state is first
    assert machine.state.sweep_candle.open_time == SWEEP_INDEX * 300
    assert machine.state.created_at == 50.0


def test_swept_setup_times_out_after_twenty_candles(bullish_candles):
    clock = FakeClock(1000.0)
    machine = make_machine(clock)
    run_through(machine, bullish_candles, 'bullish', SWEEP_INDEX)
    assert isinstance(machine.state, Swept)

    clock.now = 1000.0 + 20 * 300 - 1
    machine.on_candle_close(closed_frame(bullish_candles, SWEEP_INDEX + 1), 'bullish')
    assert machine.stage == 'swept'

    clock.now = 1000.0 + 20 * 300
    assert machine.on_candle_close(closed_frame(bullish_candles, SWEEP_INDEX + 2), 'bullish') is None
    assert isinstance(machine.state, Idle)


def test_timeout_checked_before_tap(bullish_candles):
    clock = FakeClock(0.0)
    machine = make_machine(clock)
    run_through(machine, bullish_candles, 'bullish', BREAK_INDEX)
    assert machine.stage == 'structure_broken'

    clock.now = 20 * 300
    request = machine.on_candle_close(closed_frame(bullish_candles, TAP_INDEX), 'bullish')
    assert request is None
    assert machine.stage == 'idle'


def test_break_without_fvg_invalidates_setup():
    rows = list(BULLISH_SETUP)
    o, h, _, c = rows[BREAK_INDEX]
    rows[BREAK_INDEX] = (o, h, 101.4, c)  # low now overlaps candle 11's high
    candles = make_candles(rows)

    machine = make_machine()
    stages, requests = run_through(machine, candles, 'bullish', TAP_INDEX)
    assert stages[BREAK_INDEX - 1] == 'swept'
    assert stages[BREAK_INDEX:] == ['idle'] * (TAP_INDEX - BREAK_INDEX + 1)
    assert requests == []


def test_short_history_skips_step():
    machine = make_machine()
    candles = make_candles(BULLISH_SETUP[:4])
    assert machine.on_candle_close(closed_frame(candles, 3), 'bullish') is None
    assert machine.stage == 'idle'
    assert machine.on_candle_close(candles_to_dataframe([]), 'bullish') is None


@pytest.mark.parametrize('symbol, pip', [
    ('frxGBPUSD', 0.0001),
    ('frxUSDJPY', 0.01),
    ('frxXAUUSD', 0.1),
])
def test_stop_loss_distance_scales_with_pip_size(symbol, pip):
    machine = make_machine(symbol=symbol)
    assert machine.stop_loss_for('buy', 100.0) == pytest.approx(100.0 - 10 * pip)
    assert machine.stop_loss_for('sell', 100.0) == pytest.approx(100.0 + 10 * pip)
