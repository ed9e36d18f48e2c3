"""
Configuration loader for YAML files
"""
import yaml
import logging
from dataclasses import asdict, fields
from pathlib import Path

from .models import AppConfig, InstrumentConfig, StrategyConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/bot.yaml"


class ConfigLoader:
    """Loads and saves configuration from YAML files"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> AppConfig:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, creating default")
            return self._create_default_config()

        with open(self.config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        if not data:
            logger.warning("Empty config file, using defaults")
            return self._create_default_config()

        instruments = [InstrumentConfig(**item) for item in data.get('instruments', [])]

        strategy_fields = {f.name for f in fields(StrategyConfig)}
        strategy_data = data.get('strategy') or {}
        unknown = set(strategy_data) - strategy_fields
        if unknown:
            logger.warning(f"Ignoring unknown strategy keys: {sorted(unknown)}")
        strategy = StrategyConfig(**{k: v for k, v in strategy_data.items() if k in strategy_fields})

        config = AppConfig(
            instruments=instruments,
            strategy=strategy,
            deriv_app_id=data.get('deriv_app_id', 1089),
            deriv_ws_url=data.get('deriv_ws_url'),
            deriv_requests_per_second=data.get('deriv_requests_per_second', 5),
            telegram_token=data.get('telegram_token'),
            telegram_chat_id=data.get('telegram_chat_id'),
            log_level=data.get('log_level', 'INFO'),
            logs_dir=data.get('logs_dir', 'logs'),
            heartbeat_interval=data.get('heartbeat_interval', 60),
            dry_run=data.get('dry_run', False)
        )

        errors = config.validate()
        if errors:
            logger.error(f"Configuration validation errors: {errors}")
            raise ValueError(f"Configuration validation failed: {errors}")

        logger.info(f"Loaded configuration with {len(config.instruments)} instruments")
        return config

    def save(self, config: AppConfig) -> bool:
        """Save configuration to YAML file"""
        errors = config.validate()
        if errors:
            logger.error(f"Cannot save invalid configuration: {errors}")
            return False

        data = {
            'deriv_app_id': config.deriv_app_id,
            'deriv_ws_url': config.deriv_ws_url,
            'deriv_requests_per_second': config.deriv_requests_per_second,
            'telegram_token': config.telegram_token,
            'telegram_chat_id': config.telegram_chat_id,
            'log_level': config.log_level,
            'logs_dir': config.logs_dir,
            'heartbeat_interval': config.heartbeat_interval,
            'dry_run': config.dry_run,
            'strategy': asdict(config.strategy),
            'instruments': [asdict(inst) for inst in config.instruments]
        }

        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
        except OSError as e:
            logger.error(f"Failed to save config to {self.config_path}: {e}")
            return False

        logger.info(f"Configuration saved to {self.config_path}")
        return True

    def _create_default_config(self) -> AppConfig:
        """Create default configuration"""
        default_instruments = [
            InstrumentConfig(symbol="frxGBPUSD", name="GBP/USD"),
            InstrumentConfig(symbol="frxUSDJPY", name="USD/JPY"),
            InstrumentConfig(symbol="frxXAUUSD", name="XAU/USD"),
        ]

        config = AppConfig(instruments=default_instruments)

        self.save(config)

        return config


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Convenience function to load configuration"""
    loader = ConfigLoader(config_path)
    return loader.load()


def save_config(config: AppConfig, config_path: str = DEFAULT_CONFIG_PATH) -> bool:
    """Convenience function to save configuration"""
    loader = ConfigLoader(config_path)
    return loader.save(config)
