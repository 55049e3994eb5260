"""
Candle aggregation for ticker streams.

Parses raw feed payloads into TickerUpdate objects and folds them into
fixed-length per-symbol candles with a bounded history of completed buckets.
"""

import json
from typing import Dict, Iterable, Iterator, List

from pydantic import ValidationError

from src.utils.logging import get_logger

from .config import MonitorConfig
from .models import Candle, SymbolState, TickerUpdate

logger = get_logger(__name__)


class MalformedPayloadError(ValueError):
    """Raised when a feed message cannot be interpreted as ticker data."""


# ============================================================================
# PAYLOAD PARSING
# ============================================================================

def parse_ticker_payload(raw: str) -> List[TickerUpdate]:
    """Decode one feed message into ticker updates.

    Accepts a bare array of ticker objects (``!ticker@arr``), a single ticker
    object, or a combined-stream envelope ``{"stream": ..., "data": ...}``.
    Control replies such as ``{"result": null, "id": 1}`` yield no updates.
    Ticker objects that fail validation are skipped.

    Raises:
        MalformedPayloadError: If the message is not JSON or has no ticker shape.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Undecodable payload: {e}") from e

    if isinstance(data, dict):
        if "data" in data:
            data = data["data"]
        elif "result" in data and "id" in data:
            logger.debug(f"Control reply received: {data}")
            return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise MalformedPayloadError(f"Unexpected payload type: {type(data).__name__}")

    updates = []
    for item in data:
        if not isinstance(item, dict):
            raise MalformedPayloadError(f"Unexpected ticker entry type: {type(item).__name__}")
        try:
            updates.append(TickerUpdate.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping invalid ticker entry: {e.error_count()} errors")
    return updates


# ============================================================================
# AGGREGATOR
# ============================================================================

class CandleAggregator:
    """Owns the per-symbol candle state.

    Every update in one ``ingest`` call is bucketed by the same arrival time, so
    all symbols in a batch roll over to a new bucket together.
    """

    def __init__(self, config: MonitorConfig):
        self.config = config
        self.period = config.period
        self.quote_asset = config.quote_asset
        self._states: Dict[str, SymbolState] = {}

    def ingest(self, updates: Iterable[TickerUpdate], arrival_ms: int) -> List[str]:
        """Apply a batch of updates received at ``arrival_ms``.

        Returns:
            Symbols that were updated, in first-seen order
        """
        period_start = self.period.align_down(arrival_ms)
        touched: Dict[str, None] = {}

        for update in updates:
            symbol = update.symbol.upper()
            if not symbol.endswith(self.quote_asset):
                continue
            self._apply(symbol, update.last_price, update.last_quantity, period_start)
            touched[symbol] = None

        return list(touched)

    def _apply(self, symbol: str, price: float, quantity: float, period_start: int) -> None:
        state = self._states.get(symbol)
        if state is None:
            state = SymbolState(history_size=self.config.history_candles_count)
            self._states[symbol] = state

        current = state.current
        if current is None:
            state.current = Candle.start(period_start, price, quantity)
        elif current.start_time == period_start:
            current.update(price, quantity)
        else:
            state.roll(Candle.start(period_start, price, quantity))
            logger.debug(
                f"Closed {self.period.label} candle for {symbol}",
                extra={"symbol": symbol, "start_time": current.start_time, "history": len(state.history)},
            )

    def get_state(self, symbol: str) -> SymbolState:
        """Return the state for ``symbol``.

        Raises:
            KeyError: If the symbol has never been observed.
        """
        return self._states[symbol]

    def symbols(self) -> List[str]:
        return list(self._states)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[str]:
        return iter(self._states)
