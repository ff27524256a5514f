#!/usr/bin/env python3
"""
SIGNAL SERVICE - Entry points used by scheduled jobs and command handlers.

    evaluate()           price series + sentiment (+ user) -> Signal
    evaluate_ticker()    fetches both sources first, degrades on failure
    confirm_execution()  frequency check + position change + ledger append,
                         applied as one store transaction

Upstream failures and short histories never raise out of evaluate(); they
produce the degraded HOLD from fallback.unavailable_signal().
"""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .config import get_config
from .errors import InsufficientDataError, PositionConflict, PositionStateError
from .evaluator import SignalEvaluator
from .fallback import unavailable_signal
from .frequency import FrequencyLimiter
from .indicators import all_time_high, compute_indicators
from .market_data import fetch_price_series
from .models import (
    ExecutionRecord, NoPosition, Ok, PriceSeries, PriceSeriesResult,
    SentimentReading, SentimentResult, Side, Signal, Unavailable, position_state,
)
from .sentiment import fetch_sentiment
from .store import TradingStore, get_store

logger = logging.getLogger(__name__)

PriceInput = Union[PriceSeries, PriceSeriesResult, None]
SentimentInput = Union[SentimentReading, SentimentResult, None]


def _unwrap(value):
    if isinstance(value, Ok):
        return value.value
    if isinstance(value, Unavailable):
        return None
    return value


class SignalService:

    def __init__(self, store: Optional[TradingStore] = None,
                 evaluator: Optional[SignalEvaluator] = None,
                 price_fetcher: Callable[[str], PriceSeriesResult] = fetch_price_series,
                 sentiment_fetcher: Callable[[], SentimentResult] = fetch_sentiment):
        cfg = get_config().trading
        self._store = store
        self.evaluator = evaluator or SignalEvaluator(cfg.entry_buffer, cfg.exit_buffer)
        self.price_fetcher = price_fetcher
        self.sentiment_fetcher = sentiment_fetcher

    @property
    def store(self) -> TradingStore:
        # Lazy so evaluation without a user never opens a database
        if self._store is None:
            self._store = get_store()
        return self._store

    @property
    def limiter(self) -> FrequencyLimiter:
        return FrequencyLimiter(self.store)

    # ── Evaluation ───────────────────────────────────────────────────

    def evaluate(self, ticker: str, sentiment: SentimentInput, price_series: PriceInput,
                 user: Optional[str] = None, current_price: Optional[float] = None) -> Signal:
        """
        Recommendation for one ticker.

        Without a user the evaluation is position-agnostic (always the
        no-position branch). sentiment / price_series may be plain values,
        Ok(...) or Unavailable(...); anything missing yields a degraded HOLD.
        """
        ticker = ticker.upper()
        reading = _unwrap(sentiment)
        series = _unwrap(price_series)

        if series is None or len(series) == 0:
            return unavailable_signal(reading, ticker, price_available=False)

        try:
            indicators = compute_indicators(series.closes)
        except InsufficientDataError as e:
            logger.warning(f"{ticker}: {e}")
            return unavailable_signal(reading, ticker, price_available=False)

        if reading is None:
            return unavailable_signal(None, ticker, price_available=True)

        price = current_price if current_price is not None else series.current_price
        if indicators.is_degraded:
            logger.info(f"{ticker}: SMA {list(indicators.degraded_windows)} over "
                        f"{len(series)} points only")

        if user is None:
            state = NoPosition()
            ath = None
        else:
            state = position_state(self.store.get_position(user, ticker), ticker)
            ath = all_time_high(series.highs) if not isinstance(state, NoPosition) else None

        signal = self.evaluator.evaluate(price, indicators, reading, state, ath)
        logger.info(f"{ticker}: {signal.type.value} at ${price:.2f} "
                    f"(F&G {reading.rating.label} {reading.score:.0f})")
        return signal

    def evaluate_ticker(self, ticker: Optional[str] = None, user: Optional[str] = None) -> Signal:
        """Fetch price data and sentiment, then evaluate."""
        ticker = (ticker or get_config().trading.default_symbol).upper()
        prices = self.price_fetcher(ticker)
        sentiment = self.sentiment_fetcher()
        return self.evaluate(ticker, sentiment, prices, user=user)

    # ── Confirmation ─────────────────────────────────────────────────

    def confirm_execution(self, user: str, ticker: str, side: Union[str, Side], price: float,
                          date: Optional[datetime] = None,
                          signal_price: Optional[float] = None) -> ExecutionRecord:
        """
        Record a user-confirmed BUY or SELL.

        The monthly limit is evaluated against the execution date (now by
        default). Raises FrequencyLimitExceeded, PositionConflict (BUY while
        a position is open), PositionStateError (SELL with nothing open) or
        StoreOperationFailed; on any of them nothing is written.
        """
        side = Side.parse(side)
        ticker = ticker.upper()
        if price is None or not math.isfinite(price) or price <= 0:
            raise ValueError(f"execution price must be a positive number, got {price!r}")
        when = date or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)

        record = ExecutionRecord(
            signal_type=side,
            ticker=ticker,
            execution_price=float(price),
            execution_date=when,
            signal_price=signal_price,
        )

        store = self.store
        with store.transaction():
            self.limiter.check(user, now=when)
            existing = store.get_position(user, ticker)
            if side is Side.BUY and existing is not None:
                raise PositionConflict("confirm_execution", str(user), ticker)
            if side is Side.SELL and existing is None:
                raise PositionStateError(f"No open position for {ticker} to sell")
            store.apply_execution(user, record)

        logger.info(f"Recorded {side.value} {ticker} @ ${price:.2f} for {user}")
        return record
