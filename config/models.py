"""
Configuration models for the order block sweep bot
"""
from dataclasses import dataclass, field
from typing import List, Optional

METAL_CODES = ('XAU', 'XAG', 'XPT', 'XPD')


def default_pip_size(symbol: str) -> float:
    """Pip size by instrument: JPY-quoted pairs 0.01, metals 0.1, others 0.0001"""
    symbol = symbol.upper()
    if any(code in symbol for code in METAL_CODES):
        return 0.1
    if symbol.endswith('JPY'):
        return 0.01
    return 0.0001


@dataclass
class InstrumentConfig:
    """Configuration for a single instrument"""
    symbol: str  # Deriv symbol, e.g. 'frxGBPUSD'
    name: Optional[str] = None  # Display name, e.g. 'GBP/USD'
    enabled: bool = True
    pip_size: Optional[float] = None

    def __post_init__(self):
        if self.name is None:
            self.name = self.symbol

    def get_pip_size(self) -> float:
        return self.pip_size if self.pip_size is not None else default_pip_size(self.symbol)


@dataclass
class StrategyConfig:
    """Sweep -> BoS -> OB strategy parameters"""
    execution_granularity: int = 300  # 5 minutes
    analysis_granularity: int = 3600  # 1 hour
    history_count: int = 100
    buffer_size: int = 200

    swing_period: int = 3
    bos_window: int = 10
    bos_swing_period: int = 2
    ob_depth: int = 10

    trend_lookback: int = 10
    trend_refresh_every: int = 12  # closed LTF candles between HTF refreshes
    setup_timeout_candles: int = 20

    stop_loss_pips: float = 10.0  # number of pips, scaled by the instrument's pip size
    risk_reward: float = 2.0
    stake: float = 10.0
    multiplier: int = 10
    currency: str = "USD"

    @property
    def setup_timeout_seconds(self) -> int:
        return self.setup_timeout_candles * self.execution_granularity


@dataclass
class AppConfig:
    """Main application configuration"""
    instruments: List[InstrumentConfig] = field(default_factory=list)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)

    # Deriv connection (token comes from the environment)
    deriv_app_id: int = 1089
    deriv_ws_url: Optional[str] = None
    deriv_requests_per_second: int = 5

    # Notifications
    telegram_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    log_level: str = "INFO"
    logs_dir: str = "logs"
    heartbeat_interval: int = 60  # seconds
    dry_run: bool = False

    def get_ws_url(self) -> str:
        if self.deriv_ws_url:
            return self.deriv_ws_url
        return f"wss://ws.derivws.com/websockets/v3?app_id={self.deriv_app_id}"

    def get_enabled_instruments(self) -> List[InstrumentConfig]:
        """Get list of enabled instruments"""
        return [inst for inst in self.instruments if inst.enabled]

    def get_instrument_config(self, symbol: str) -> Optional[InstrumentConfig]:
        """Get configuration for specific symbol"""
        for inst in self.instruments:
            if inst.symbol == symbol:
                return inst
        return None

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        symbols = [inst.symbol for inst in self.instruments]
        if len(symbols) != len(set(symbols)):
            errors.append("Duplicate symbols found in configuration")

        for inst in self.instruments:
            if not inst.symbol:
                errors.append("Instrument with empty symbol")
            if inst.pip_size is not None and inst.pip_size <= 0:
                errors.append(f"Invalid pip size for {inst.symbol}: {inst.pip_size}")

        s = self.strategy
        if s.execution_granularity <= 0 or s.analysis_granularity <= 0:
            errors.append("Granularities must be positive")
        if s.analysis_granularity < s.execution_granularity:
            errors.append("Analysis timeframe must not be lower than execution timeframe")
        if s.buffer_size < s.bos_window:
            errors.append(f"Buffer size {s.buffer_size} smaller than BoS window {s.bos_window}")
        if s.swing_period < 1 or s.bos_swing_period < 1:
            errors.append("Swing periods must be at least 1")
        if s.trend_refresh_every < 1:
            errors.append("trend_refresh_every must be at least 1")
        if s.stop_loss_pips <= 0:
            errors.append(f"Stop loss pips must be positive: {s.stop_loss_pips}")
        if s.risk_reward < 1.0:
            errors.append(f"Risk/reward too low: {s.risk_reward}")

        return errors
