"""Utility for sending Telegram notifications."""
import logging
import requests

from .models import ExecutionResult

logger = logging.getLogger(__name__)


def send_telegram_message(token: str, chat_id: str, text: str) -> bool:
    """Send a Telegram message.

    Args:
        token: Bot token obtained from @BotFather.
        chat_id: ID of the chat to send the message to.
        text: Message text.

    Returns:
        True if the request succeeded, False otherwise.
    """
    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {"chat_id": chat_id, "text": text}
    try:
        resp = requests.post(url, data=payload, timeout=10)
    except requests.RequestException as e:
        logger.error("Telegram request error: %s", e)
        return False

    if resp.ok:
        return True

    # Try to log Telegram error details if present
    try:
        desc = resp.json().get('description')
    except ValueError:
        desc = resp.text[:200]
    logger.warning("Telegram send failed: status=%s, detail=%s", resp.status_code, desc)
    return False


def format_execution_message(result: ExecutionResult) -> str:
    """Human readable summary of an executed trade"""
    mode = "PAPER" if result.is_simulation else "LIVE"
    if not result.is_successful:
        return (
            f"[{mode}] {result.direction.upper()} {result.symbol} rejected: "
            f"{result.error_message or result.status}"
        )
    return (
        f"[{mode}] {result.direction.upper()} {result.symbol}\n"
        f"Entry: {result.entry_price}\n"
        f"SL: {result.stop_loss}\n"
        f"TP: {result.take_profit}\n"
        f"Contract: {result.contract_id}"
    )
