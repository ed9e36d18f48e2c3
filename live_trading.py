#!/usr/bin/env python3
"""
Live Order Block Sweep Bot
Liquidity sweep -> break of structure -> order block retest on Deriv forex and gold
"""
import asyncio
import argparse
import sys
import logging
import os
from pathlib import Path

from config import AppConfig, load_config
from obbot.core import DerivClient, DerivExecutor, DerivMarketData, PaperExecutor, StrategyEngine
from obbot.models import ExecutionResult
from obbot.telegram import format_execution_message, send_telegram_message


def setup_logging(level: str = "INFO", quiet_mode: bool = False, logs_dir: str = "logs"):
    """Setup logging configuration"""
    Path(logs_dir).mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(Path(logs_dir) / 'obbot.log')]

    if not quiet_mode:
        handlers.append(logging.StreamHandler(sys.stdout))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # Suppress noisy loggers
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def _load_dotenv(path: str = ".env") -> None:
    """Lightweight .env loader. Sets os.environ if not set.

    Supports simple lines: KEY=VALUE, ignores comments and empty lines.
    Strips surrounding single/double quotes from VALUE.
    """
    if not os.path.exists(path):
        return
    with open(path, 'r', encoding='utf-8') as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith('#'):
                continue
            if '=' not in line:
                continue
            key, val = line.split('=', 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and (key not in os.environ):
                os.environ[key] = val


def apply_environment(config: AppConfig) -> AppConfig:
    """Fill connection and notification settings from the environment"""
    if os.getenv('APP_ID'):
        config.deriv_app_id = int(os.environ['APP_ID'])
    if os.getenv('DERIV_WS_URL'):
        config.deriv_ws_url = os.environ['DERIV_WS_URL']
    config.telegram_token = config.telegram_token or os.getenv('TELEGRAM_BOT_TOKEN')
    config.telegram_chat_id = config.telegram_chat_id or os.getenv('TELEGRAM_CHAT_ID')
    return config


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Order Block Sweep Bot for Deriv forex and metals',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python live_trading.py
  python live_trading.py --config config/bot.yaml --dry-run
  python live_trading.py --symbols frxGBPUSD frxXAUUSD --log-level DEBUG
        """
    )

    parser.add_argument('--config', default='config/bot.yaml',
                       help='YAML configuration file (default: config/bot.yaml)')
    parser.add_argument('--symbols', nargs='+', default=None,
                       help='Only trade these Deriv symbols (must exist in config)')
    parser.add_argument('--dry-run', action='store_true',
                       help='Record paper trades instead of buying contracts')
    parser.add_argument('--log-level', default=None,
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Logging level (default: from config)')
    parser.add_argument('--quiet', action='store_true',
                       help='Quiet mode - log only to file, not console')
    return parser


async def run_bot(config: AppConfig, token: str) -> int:
    """Connect, start the engine and run until cancelled"""
    logger = logging.getLogger(__name__)
    client = DerivClient(config.get_ws_url(), token, config.deriv_requests_per_second)

    try:
        await client.connect()
    except Exception as e:
        logger.error(f"Error starting engine: {e}", exc_info=True)
        return 1

    source = DerivMarketData(client)
    engine = StrategyEngine(source, None, config)
    if config.dry_run:
        engine.executor = PaperExecutor(config.strategy, engine.get_last_price)
    else:
        engine.executor = DerivExecutor(client, config.strategy)

    if config.telegram_token and config.telegram_chat_id:
        async def notify(result: ExecutionResult):
            await asyncio.to_thread(
                send_telegram_message,
                config.telegram_token,
                config.telegram_chat_id,
                format_execution_message(result)
            )
        engine.add_trade_callback(notify)
        logger.info("Telegram notifications enabled")

    try:
        running = await engine.start()
        if running == 0:
            logger.error("No instrument could be initialized")
            return 1
        await asyncio.Event().wait()
    finally:
        await engine.stop()
        await client.disconnect()

    return 0


async def main() -> int:
    """Main entry point"""
    args = build_arg_parser().parse_args()

    _load_dotenv()
    config = apply_environment(load_config(args.config))
    if args.dry_run:
        config.dry_run = True
    if args.symbols:
        wanted = set(args.symbols)
        for inst in config.instruments:
            inst.enabled = inst.symbol in wanted

    setup_logging(args.log_level or config.log_level, quiet_mode=args.quiet, logs_dir=config.logs_dir)

    token = os.getenv('DERIV_API_TOKEN')
    if not token and not config.dry_run:
        print("Error: DERIV_API_TOKEN is required for live trading (use --dry-run otherwise)")
        return 1

    if not args.quiet:
        print("Starting Deriv Order Block Bot...")
        print(f"Instruments: {[i.name for i in config.get_enabled_instruments()]}")
        print(f"Mode: {'PAPER' if config.dry_run else 'LIVE'}")
        print("Press Ctrl+C to stop")

    return await run_bot(config, token)


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nStopped by user")
        sys.exit(0)


if __name__ == '__main__':
    run()
