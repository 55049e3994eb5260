"""
Configuration for the volatility monitor.

Three immutable pydantic models are loaded once at startup and injected into
the components that need them:

- MonitorConfig: candle aggregation and anomaly thresholds
- StreamConfig: websocket feed, heartbeat and reconnect settings
- TelegramConfig: alert delivery credentials

Each model has a ``from_env()`` constructor backed by the env helpers in
``src.utils.config``. Any invalid or missing value raises ConfigurationError.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.utils.config import get_env_bool, get_env_float, get_env_int, get_env_list, get_env_str

from .models import CandlePeriod

DEFAULT_WS_URL = "wss://fstream.binance.com/ws/!ticker@arr"


class ConfigurationError(ValueError):
    """Raised when startup configuration is missing or invalid."""


def _build(model, **values):
    try:
        return model(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model.__name__}: {e}") from e


class MonitorConfig(BaseModel):
    """Aggregation and anomaly detection settings."""

    model_config = ConfigDict(frozen=True)

    candle_period: str = "5m"
    history_candles_count: int = Field(default=3, ge=2)
    magnification: float = Field(default=2.0, gt=1.0)
    quote_asset: str = Field(default="USDT", min_length=1)
    check_interval_ms: int = Field(default=1000, ge=0)

    @field_validator("candle_period")
    @classmethod
    def _check_period(cls, value: str) -> str:
        return CandlePeriod.parse(value).label

    @field_validator("quote_asset")
    @classmethod
    def _upper_quote_asset(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def period(self) -> CandlePeriod:
        return CandlePeriod.parse(self.candle_period)

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        try:
            values = dict(
                candle_period=get_env_str("CANDLE_PERIOD", "5m"),
                history_candles_count=get_env_int("HISTORY_CANDLES_COUNT", 3),
                magnification=get_env_float("MAGNIFICATION", 2.0),
                quote_asset=get_env_str("QUOTE_ASSET", "USDT"),
                check_interval_ms=get_env_int("CHECK_INTERVAL_MS", 1000),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return _build(cls, **values)


class StreamConfig(BaseModel):
    """Websocket feed settings."""

    model_config = ConfigDict(frozen=True)

    url: str = DEFAULT_WS_URL
    streams: List[str] = Field(default_factory=list)
    proxy_url: Optional[str] = None
    heartbeat_interval: float = Field(default=30.0, gt=0)
    reconnect_delay: float = Field(default=5.0, ge=0)
    connect_timeout: float = Field(default=10.0, gt=0)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError(f"websocket URL must start with ws:// or wss://, got {value!r}")
        return value

    @classmethod
    def from_env(cls) -> "StreamConfig":
        try:
            values = dict(
                url=get_env_str("BINANCE_WS_URL", DEFAULT_WS_URL),
                streams=get_env_list("BINANCE_STREAMS", []),
                proxy_url=get_env_str("WS_PROXY"),
                heartbeat_interval=get_env_float("HEARTBEAT_INTERVAL_SECONDS", 30.0),
                reconnect_delay=get_env_float("RECONNECT_DELAY_SECONDS", 5.0),
                connect_timeout=get_env_float("WS_CONNECTION_TIMEOUT", 10.0),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return _build(cls, **values)


class TelegramConfig(BaseModel):
    """Telegram bot credentials. Both token and chat id are required."""

    model_config = ConfigDict(frozen=True)

    bot_token: str = Field(min_length=1)
    chat_id: str = Field(min_length=1)
    proxy_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "TelegramConfig":
        bot_token = get_env_str("TG_API_KEY")
        chat_id = get_env_str("TG_CHAT_ID")
        missing = [name for name, value in (("TG_API_KEY", bot_token), ("TG_CHAT_ID", chat_id)) if not value]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
        return _build(cls, bot_token=bot_token, chat_id=chat_id, proxy_url=get_env_str("WS_PROXY"))


class LoggingConfig(BaseModel):
    """Log level and output format."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    json_output: bool = True

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        try:
            return cls(
                level=get_env_str("LOG_LEVEL", "INFO"),
                json_output=get_env_bool("LOG_JSON", True),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
