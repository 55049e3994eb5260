"""
Data models for the volatility monitor.

- CandlePeriod: parsed bucket length ("5m", "1h", "1d") with epoch alignment
- TickerUpdate: one ticker object from the feed (pydantic, alias-tolerant)
- Candle: one OHLCV bucket for one symbol
- SymbolState: per-symbol aggregation state owned by the aggregator
- AnomalyAlert: result of a positive anomaly evaluation
"""

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ============================================================================
# CANDLE PERIOD
# ============================================================================

_PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s*([mhd])\s*$")

_UNIT_MS = {
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


@dataclass(frozen=True)
class CandlePeriod:
    """Fixed bucket length, e.g. 5 minutes or 1 day."""

    count: int
    unit: str

    @classmethod
    def parse(cls, value: str) -> "CandlePeriod":
        """Parse a period label such as ``"5m"``, ``"1h"`` or ``"1d"``.

        Raises:
            ValueError: If the label is not ``<positive int><m|h|d>``.
        """
        match = _PERIOD_PATTERN.match(value or "")
        if not match:
            raise ValueError(f"Invalid candle period {value!r}, expected e.g. '5m', '1h', '1d'")
        count = int(match.group(1))
        if count <= 0:
            raise ValueError(f"Candle period must be positive, got {value!r}")
        return cls(count=count, unit=match.group(2))

    @property
    def label(self) -> str:
        return f"{self.count}{self.unit}"

    @property
    def milliseconds(self) -> int:
        return self.count * _UNIT_MS[self.unit]

    def align_down(self, timestamp_ms: int) -> int:
        """Round a timestamp down to the start of its bucket (epoch anchored, UTC)."""
        timestamp_ms = int(timestamp_ms)
        return timestamp_ms - timestamp_ms % self.milliseconds


# ============================================================================
# FEED MODEL
# ============================================================================

class TickerUpdate(BaseModel):
    """One ticker object from the market feed.

    Accepts both the compact Binance keys (``s``, ``c``, ``Q``) and the long
    form (``symbol``, ``lastPrice``, ``lastQuantity``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    symbol: str = Field(validation_alias=AliasChoices("s", "symbol"))
    last_price: float = Field(validation_alias=AliasChoices("c", "lastPrice", "last_price"))
    last_quantity: float = Field(
        default=0.0,
        validation_alias=AliasChoices("Q", "lastQuantity", "last_quantity"),
    )


# ============================================================================
# AGGREGATION STATE
# ============================================================================

@dataclass
class Candle:
    """OHLCV bucket for one symbol.

    Attributes:
        start_time: Bucket start in epoch milliseconds (aligned to the period)
        open: First price observed in the bucket
        high: Running maximum of observed prices
        low: Running minimum of observed prices
        close: Last price observed
        volume: Sum of trade quantities reported with each update
    """
    start_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def start(cls, start_time: int, price: float, quantity: float) -> "Candle":
        return cls(
            start_time=start_time,
            open=price,
            high=price,
            low=price,
            close=price,
            volume=quantity,
        )

    def update(self, price: float, quantity: float) -> None:
        """Fold one more trade into the bucket."""
        if price > self.high:
            self.high = price
        if price < self.low:
            self.low = price
        self.close = price
        self.volume += quantity

    def amplitude(self) -> Optional[float]:
        """Normalized intraperiod range, ``(high - low) / open``.

        Returns None when ``open`` is zero and the ratio is undefined.
        """
        if self.open == 0:
            return None
        return (self.high - self.low) / self.open


@dataclass
class SymbolState:
    """Mutable per-symbol state.

    ``current`` and ``history`` are written by the aggregator only;
    ``last_check_at`` and ``last_alerted_period`` by the detector only.
    """
    history_size: int
    current: Optional[Candle] = None
    history: Deque[Candle] = field(init=False)
    last_check_at: Optional[int] = None
    last_alerted_period: Optional[int] = None

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_size)

    def roll(self, new_candle: Candle) -> None:
        """Close the current bucket into history and start ``new_candle``."""
        if self.current is not None:
            self.history.append(self.current)
        self.current = new_candle


# ============================================================================
# ALERTS
# ============================================================================

@dataclass(frozen=True)
class AnomalyAlert:
    """A symbol whose current range exceeded its recent average range."""
    symbol: str
    period_label: str
    period_start: int
    direction: str
    current_amplitude: float
    average_amplitude: float
    history_periods: int
    volume: float

    @property
    def glyph(self) -> str:
        return "📈" if self.direction == "up" else "📉"

    def format_message(self) -> str:
        """Render the notification text (Telegram Markdown)."""
        return (
            f"⚠️ *Abnormal volatility* {self.glyph} `{self.symbol}`\n"
            f"{self.period_label} amplitude: {self.current_amplitude * 100:.2f}%\n"
            f"Average of last {self.history_periods} periods: {self.average_amplitude * 100:.2f}%\n"
            f"Volume: {self.volume:.4f}"
        )
