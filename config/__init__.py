"""
Configuration package for the order block sweep bot
"""

from .models import AppConfig, InstrumentConfig, StrategyConfig, default_pip_size
from .loader import ConfigLoader, load_config, save_config

__all__ = [
    'AppConfig', 'InstrumentConfig', 'StrategyConfig', 'default_pip_size',
    'ConfigLoader', 'load_config', 'save_config'
]
