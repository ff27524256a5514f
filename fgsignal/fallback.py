#!/usr/bin/env python3
"""
DEGRADED MODE - Safe HOLD signal when an upstream source is unavailable.

The returned signal always carries current_price == 0 as a sentinel (never a
real price). Callers branch on is_unavailable(signal), not on exception type.
"""

import logging
from typing import Optional

from .models import IndicatorSet, SentimentReading, Signal, SignalType

logger = logging.getLogger(__name__)

UNAVAILABLE_PRICE = 0.0


def unavailable_signal(sentiment: Optional[SentimentReading] = None,
                       ticker: str = "SPY",
                       price_available: bool = False) -> Signal:
    """
    HOLD signal naming exactly which source(s) were unavailable.

    sentiment is None means the Fear & Greed reading could not be fetched.
    price_available=False (the default) means price data/indicators could
    not be produced for the ticker.
    """
    if sentiment is not None and price_available:
        raise ValueError("unavailable_signal needs at least one missing source")

    ticker = ticker.upper()
    reasons = ["HOLD - Insufficient data to evaluate trading conditions"]
    missing = []
    if not price_available:
        reasons.append(f"Market data ({ticker} price and indicators) unavailable")
        missing.append("price")
    if sentiment is None:
        reasons.append("Fear & Greed Index data unavailable")
        missing.append("sentiment")

    logger.warning(f"Degraded signal for {ticker}: {' and '.join(missing)} data unavailable")

    return Signal(
        type=SignalType.HOLD,
        current_price=UNAVAILABLE_PRICE,
        indicators=IndicatorSet.zeros(),
        entry_condition_met=False,
        sentiment_condition_met=False,
        reasoning=". ".join(reasons) + ".",
        reasons=tuple(reasons),
    )


def is_unavailable(signal: Signal) -> bool:
    """True for signals produced by unavailable_signal()."""
    return signal.current_price == UNAVAILABLE_PRICE
