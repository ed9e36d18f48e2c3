"""
Core modules for the order block sweep bot
"""

from .deriv_client import DerivClient
from .market_data import MarketDataSource, DerivMarketData
from .executor import TradeExecutor, DerivExecutor, PaperExecutor
from .setup_machine import SetupStateMachine, Idle, Swept, StructureBroken
from .engine import StrategyEngine, InstrumentWorker

__all__ = [
    'DerivClient',
    'MarketDataSource', 'DerivMarketData',
    'TradeExecutor', 'DerivExecutor', 'PaperExecutor',
    'SetupStateMachine', 'Idle', 'Swept', 'StructureBroken',
    'StrategyEngine', 'InstrumentWorker'
]
