"""Volatility Monitor: real-time candle aggregation and amplitude alerts for ticker streams."""

__version__ = "0.1.0"

from .aggregator import CandleAggregator, MalformedPayloadError, parse_ticker_payload
from .config import ConfigurationError, LoggingConfig, MonitorConfig, StreamConfig, TelegramConfig
from .detector import AlertSink, AnomalyDetector
from .models import AnomalyAlert, Candle, CandlePeriod, SymbolState, TickerUpdate
from .monitor import VolatilityMonitor
from .notifier import TelegramNotifier
from .stream_client import ConnectionState, StreamClient

__all__ = [
    "AlertSink",
    "AnomalyAlert",
    "AnomalyDetector",
    "Candle",
    "CandleAggregator",
    "CandlePeriod",
    "ConfigurationError",
    "ConnectionState",
    "LoggingConfig",
    "MalformedPayloadError",
    "MonitorConfig",
    "StreamClient",
    "StreamConfig",
    "SymbolState",
    "TelegramConfig",
    "TelegramNotifier",
    "TickerUpdate",
    "VolatilityMonitor",
    "parse_ticker_payload",
]
