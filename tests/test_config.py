"""
Tests for configuration loading and the environment helpers.
"""

import pytest

from src.utils.config import get_env_bool, get_env_float, get_env_int, get_env_list, get_env_str
from src.volatility_monitor.config import (
    DEFAULT_WS_URL,
    ConfigurationError,
    LoggingConfig,
    MonitorConfig,
    StreamConfig,
    TelegramConfig,
)

ENV_VARS = [
    "CANDLE_PERIOD", "HISTORY_CANDLES_COUNT", "MAGNIFICATION", "QUOTE_ASSET", "CHECK_INTERVAL_MS",
    "BINANCE_WS_URL", "BINANCE_STREAMS", "WS_PROXY", "HEARTBEAT_INTERVAL_SECONDS",
    "RECONNECT_DELAY_SECONDS", "WS_CONNECTION_TIMEOUT", "TG_API_KEY", "TG_CHAT_ID",
    "LOG_LEVEL", "LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestEnvHelpers:
    """Tests for src.utils.config helpers."""

    def test_defaults_when_unset_or_blank(self, monkeypatch):
        """Test unset and blank variables fall back to defaults."""
        monkeypatch.setenv("LOG_LEVEL", "   ")

        assert get_env_str("LOG_LEVEL", "INFO") == "INFO"
        assert get_env_int("HISTORY_CANDLES_COUNT", 3) == 3
        assert get_env_float("MAGNIFICATION", 2.0) == 2.0
        assert get_env_bool("LOG_JSON", True) is True
        assert get_env_list("BINANCE_STREAMS", ["a"]) == ["a"]

    def test_parses_values(self, monkeypatch):
        """Test values are converted to the requested types."""
        monkeypatch.setenv("HISTORY_CANDLES_COUNT", "5")
        monkeypatch.setenv("MAGNIFICATION", "2.5")
        monkeypatch.setenv("LOG_JSON", "no")
        monkeypatch.setenv("BINANCE_STREAMS", "btcusdt@ticker, ,ethusdt@ticker")

        assert get_env_int("HISTORY_CANDLES_COUNT", 3) == 5
        assert get_env_float("MAGNIFICATION", 2.0) == 2.5
        assert get_env_bool("LOG_JSON", True) is False
        assert get_env_list("BINANCE_STREAMS") == ["btcusdt@ticker", "ethusdt@ticker"]

    @pytest.mark.parametrize("helper,value", [
        (get_env_int, "three"),
        (get_env_float, "fast"),
        (get_env_bool, "maybe"),
    ])
    def test_invalid_values_raise(self, monkeypatch, helper, value):
        """Test unconvertible values raise ValueError."""
        monkeypatch.setenv("SOME_SETTING", value)

        with pytest.raises(ValueError):
            helper("SOME_SETTING", 1)


class TestMonitorConfig:
    """Tests for MonitorConfig."""

    def test_defaults(self):
        """Test defaults from an empty environment."""
        config = MonitorConfig.from_env()

        assert config.candle_period == "5m"
        assert config.period.milliseconds == 300_000
        assert config.history_candles_count == 3
        assert config.magnification == 2.0
        assert config.quote_asset == "USDT"
        assert config.check_interval_ms == 1000

    def test_from_env(self, monkeypatch):
        """Test environment overrides are applied and normalized."""
        monkeypatch.setenv("CANDLE_PERIOD", "1h")
        monkeypatch.setenv("HISTORY_CANDLES_COUNT", "6")
        monkeypatch.setenv("MAGNIFICATION", "3")
        monkeypatch.setenv("QUOTE_ASSET", "usdc")

        config = MonitorConfig.from_env()

        assert config.period.label == "1h"
        assert config.history_candles_count == 6
        assert config.magnification == 3.0
        assert config.quote_asset == "USDC"

    @pytest.mark.parametrize("name,value", [
        ("HISTORY_CANDLES_COUNT", "1"),
        ("MAGNIFICATION", "1.0"),
        ("CANDLE_PERIOD", "5s"),
        ("CHECK_INTERVAL_MS", "-1"),
        ("HISTORY_CANDLES_COUNT", "many"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        """Test out-of-range or malformed settings raise ConfigurationError."""
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError):
            MonitorConfig.from_env()

    def test_is_immutable(self):
        """Test configuration cannot be changed after construction."""
        config = MonitorConfig()

        with pytest.raises(Exception):
            config.magnification = 10.0


class TestStreamConfig:
    """Tests for StreamConfig."""

    def test_defaults(self):
        """Test the default feed is the futures all-ticker stream."""
        config = StreamConfig.from_env()

        assert config.url == DEFAULT_WS_URL
        assert config.streams == []
        assert config.proxy_url is None
        assert config.heartbeat_interval == 30.0
        assert config.reconnect_delay == 5.0

    def test_from_env(self, monkeypatch):
        """Test URL, streams and proxy are read from the environment."""
        monkeypatch.setenv("BINANCE_WS_URL", "wss://stream.binance.com:9443/stream")
        monkeypatch.setenv("BINANCE_STREAMS", "!ticker@arr")
        monkeypatch.setenv("WS_PROXY", "http://127.0.0.1:7890")

        config = StreamConfig.from_env()

        assert config.streams == ["!ticker@arr"]
        assert config.proxy_url == "http://127.0.0.1:7890"

    def test_rejects_non_websocket_url(self, monkeypatch):
        """Test an http URL is rejected."""
        monkeypatch.setenv("BINANCE_WS_URL", "https://example.com")

        with pytest.raises(ConfigurationError):
            StreamConfig.from_env()


class TestTelegramConfig:
    """Tests for TelegramConfig."""

    def test_missing_credentials(self):
        """Test missing token and chat id are both reported."""
        with pytest.raises(ConfigurationError) as exc_info:
            TelegramConfig.from_env()

        assert "TG_API_KEY" in str(exc_info.value)
        assert "TG_CHAT_ID" in str(exc_info.value)

    def test_from_env(self, monkeypatch):
        """Test credentials and shared proxy are loaded."""
        monkeypatch.setenv("TG_API_KEY", "123:abc")
        monkeypatch.setenv("TG_CHAT_ID", "-1001")
        monkeypatch.setenv("WS_PROXY", "http://127.0.0.1:7890")

        config = TelegramConfig.from_env()

        assert config.bot_token == "123:abc"
        assert config.chat_id == "-1001"
        assert config.proxy_url == "http://127.0.0.1:7890"


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_from_env(self, monkeypatch):
        """Test log level and format flags."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_JSON", "false")

        config = LoggingConfig.from_env()

        assert config.level == "debug"
        assert config.json_output is False

    def test_invalid_flag(self, monkeypatch):
        """Test an unparseable LOG_JSON value raises ConfigurationError."""
        monkeypatch.setenv("LOG_JSON", "sometimes")

        with pytest.raises(ConfigurationError):
            LoggingConfig.from_env()
