"""
VolatilityMonitor: wires the feed, the aggregator, the detector and the notifier.

Single event loop architecture:
1. StreamClient delivers each feed message to ``handle_message``
2. The batch is parsed, ingested and evaluated synchronously, so no timer or
   other message can interleave with a half-applied batch
3. Alerts go out through detached notifier tasks
4. SIGINT/SIGTERM set a shutdown event; ``run`` then closes the stream client
   and the notifier
"""

import asyncio
import signal
import time
from typing import Callable, Optional

from src.utils.logging import get_logger

from .aggregator import CandleAggregator, MalformedPayloadError, parse_ticker_payload
from .config import MonitorConfig, StreamConfig
from .detector import AlertSink, AnomalyDetector
from .stream_client import StreamClient

logger = get_logger(__name__)


class VolatilityMonitor:
    """Main monitor with a single run loop."""

    def __init__(
        self,
        monitor_config: MonitorConfig,
        stream_config: StreamConfig,
        sink: AlertSink,
        clock: Callable[[], float] = time.time,
        stream_client: Optional[StreamClient] = None,
    ):
        self.monitor_config = monitor_config
        self.stream_config = stream_config
        self.sink = sink
        self.clock = clock

        self.aggregator = CandleAggregator(monitor_config)
        self.detector = AnomalyDetector(monitor_config, self.aggregator, sink)
        self.stream_client = stream_client or StreamClient(
            url=stream_config.url,
            on_message=self.handle_message,
            on_open=self._on_open,
            proxy=stream_config.proxy_url,
            subscribe_streams=stream_config.streams,
            heartbeat_interval=stream_config.heartbeat_interval,
            reconnect_delay=stream_config.reconnect_delay,
            connect_timeout=stream_config.connect_timeout,
        )

        self.messages_processed = 0
        self.messages_dropped = 0
        self.alerts_sent = 0
        self._shutdown: Optional[asyncio.Event] = None

    def _on_open(self) -> None:
        logger.info("Subscribed to ticker feed", extra={"url": self.stream_config.url})

    def handle_message(self, raw: str) -> None:
        """Parse, ingest and evaluate one feed message."""
        try:
            updates = parse_ticker_payload(raw)
        except MalformedPayloadError as e:
            self.messages_dropped += 1
            logger.warning(f"Discarding malformed feed message: {e}")
            return

        now_ms = int(self.clock() * 1000)
        symbols = self.aggregator.ingest(updates, now_ms)
        for symbol in symbols:
            if self.detector.maybe_evaluate(symbol, now_ms) is not None:
                self.alerts_sent += 1
        self.messages_processed += 1

    def request_shutdown(self) -> None:
        """Signal handler - just sets the shutdown event."""
        logger.info("Shutdown signal received")
        if self._shutdown is not None:
            self._shutdown.set()

    async def run(self) -> None:
        """Connect, wait for a shutdown request, then close everything."""
        self._shutdown = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_shutdown)

        logger.info(
            f"VolatilityMonitor started - period: {self.monitor_config.candle_period}, "
            f"history: {self.monitor_config.history_candles_count}, "
            f"magnification: {self.monitor_config.magnification}, "
            f"quote asset: {self.monitor_config.quote_asset}"
        )

        try:
            self.stream_client.connect()
            await self._shutdown.wait()
        finally:
            logger.info("Shutting down VolatilityMonitor...")
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

            try:
                await self.stream_client.close()
            except Exception as e:
                logger.error(f"Error closing stream client: {e}")

            try:
                await self.sink.close()
            except Exception as e:
                logger.error(f"Error closing notifier: {e}")

            logger.info(
                "VolatilityMonitor stopped",
                extra={
                    "symbols": len(self.aggregator),
                    "messages_processed": self.messages_processed,
                    "messages_dropped": self.messages_dropped,
                    "alerts_sent": self.alerts_sent,
                },
            )
