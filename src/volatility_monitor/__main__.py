"""Main entry point for running the Volatility Monitor.

Configuration is read from the environment (and a ``.env`` file if present).
Exit status is 0 after a signal-driven shutdown and 1 on misconfiguration.
"""

import asyncio
import sys

from dotenv import load_dotenv

from src.utils.logging import get_logger, setup_logging

from .config import ConfigurationError, LoggingConfig, MonitorConfig, StreamConfig, TelegramConfig
from .monitor import VolatilityMonitor
from .notifier import TelegramNotifier

logger = get_logger(__name__)


def build_monitor() -> VolatilityMonitor:
    """Load every config section and assemble the monitor.

    Raises:
        ConfigurationError: If any setting is missing or invalid.
    """
    monitor_config = MonitorConfig.from_env()
    stream_config = StreamConfig.from_env()
    telegram_config = TelegramConfig.from_env()
    notifier = TelegramNotifier.from_config(telegram_config)
    return VolatilityMonitor(monitor_config, stream_config, notifier)


async def run() -> None:
    monitor = build_monitor()
    await monitor.run()


def main() -> None:
    """Console script entry point."""
    load_dotenv()

    try:
        logging_config = LoggingConfig.from_env()
    except ConfigurationError as e:
        print(f"Invalid logging configuration: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(level=logging_config.level, json_output=logging_config.json_output)

    logger.info("Starting Volatility Monitor...")

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
