"""
Amplitude anomaly detection.

Compares each symbol's in-progress candle range against the average range of
its most recent completed candles and dispatches at most one alert per symbol
per bucket.
"""

from typing import Optional, Protocol

from src.utils.logging import get_logger

from .aggregator import CandleAggregator
from .config import MonitorConfig
from .models import AnomalyAlert, SymbolState

logger = get_logger(__name__)


class AlertSink(Protocol):
    """Anything that accepts alert text without blocking the caller."""

    def dispatch(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...


class AnomalyDetector:
    """Per-symbol gated amplitude check with per-bucket deduplication."""

    def __init__(self, config: MonitorConfig, aggregator: CandleAggregator, sink: AlertSink):
        self.config = config
        self.aggregator = aggregator
        self.sink = sink
        self.period_label = config.period.label

    def maybe_evaluate(self, symbol: str, now_ms: int) -> Optional[AnomalyAlert]:
        """Evaluate ``symbol`` if its check interval has elapsed.

        Returns:
            The alert that was dispatched, or None
        """
        state = self.aggregator.get_state(symbol)
        if state.last_check_at is not None and now_ms - state.last_check_at < self.config.check_interval_ms:
            return None
        state.last_check_at = now_ms

        alert = self.evaluate(symbol, state)
        if alert is None:
            return None

        if state.last_alerted_period == alert.period_start:
            return None
        state.last_alerted_period = alert.period_start

        logger.info(
            f"Abnormal volatility on {symbol}: {alert.current_amplitude * 100:.2f}% "
            f"vs {alert.average_amplitude * 100:.2f}% average",
            extra={"symbol": symbol, "period_start": alert.period_start, "direction": alert.direction},
        )
        self.sink.dispatch(alert.format_message())
        return alert

    def evaluate(self, symbol: str, state: SymbolState) -> Optional[AnomalyAlert]:
        """Pure amplitude comparison; returns an alert candidate or None.

        A bucket with ``open == 0`` has no defined amplitude: the current bucket
        is then skipped, and such history entries count as zero amplitude.
        """
        current = state.current
        window = self.config.history_candles_count
        if current is None or len(state.history) < window:
            return None

        current_amplitude = current.amplitude()
        if current_amplitude is None:
            logger.debug(f"Skipping {symbol}: current candle opened at zero")
            return None
        # flat bucket never alerts, even against a flat history
        if current_amplitude <= 0:
            return None

        recent = list(state.history)[-window:]
        amplitudes = [candle.amplitude() or 0.0 for candle in recent]
        average_amplitude = sum(amplitudes) / len(amplitudes)

        if current_amplitude < average_amplitude * self.config.magnification:
            return None

        direction = "up" if current.close > recent[-1].close else "down"
        return AnomalyAlert(
            symbol=symbol,
            period_label=self.period_label,
            period_start=current.start_time,
            direction=direction,
            current_amplitude=current_amplitude,
            average_amplitude=average_amplitude,
            history_periods=len(recent),
            volume=current.volume,
        )
