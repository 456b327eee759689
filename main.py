"""
Repair desk bot entry point.

Runs the Telegram bot with long polling and the reminder loop, or the
offline console demo for development.

Usage:
    Telegram:     python main.py
    Console mode: python main.py console
"""

import asyncio
import logging
import sys

from repairdesk.config import settings

logger = logging.getLogger(__name__)


def _run_telegram_mode() -> None:
    """Start Telegram long polling (requires TELEGRAM_BOT_TOKEN)."""
    from repairdesk.bot.telegram import run_polling

    try:
        asyncio.run(run_polling(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


def _run_console_mode() -> None:
    """Start the offline console demo (no token required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    asyncio.run(session.run())


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_telegram_mode()
