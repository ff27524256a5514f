#!/usr/bin/env python3
"""
MARKET DATA - Daily price history from Yahoo Finance.

fetch_price_series() returns Ok(PriceSeries) | Unavailable at the boundary;
load_price_series() is the raising variant (MarketDataUnavailable).
"""

import logging
from datetime import timezone
from typing import Optional

import yfinance as yf

from .config import get_config
from .errors import MarketDataUnavailable
from .models import Ok, PricePoint, PriceSeries, PriceSeriesResult, Unavailable
from .transport import call_with_retry

logger = logging.getLogger(__name__)


def _download_history(symbol: str, period: str):
    hist = yf.Ticker(symbol).history(period=period, interval="1d", auto_adjust=False)
    if hist is None or hist.empty:
        raise MarketDataUnavailable(f"No price history returned for {symbol}")
    return hist


def history_to_series(symbol: str, hist) -> PriceSeries:
    """Convert a yfinance history DataFrame into a PriceSeries."""
    hist = hist.dropna(subset=["Close"])
    points = []
    for ts, row in hist.iterrows():
        dt = ts.to_pydatetime()
        dt = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
        close = float(row["Close"])
        points.append(PricePoint(
            timestamp=dt,
            open=float(row.get("Open", close)),
            high=float(row.get("High", close)),
            low=float(row.get("Low", close)),
            close=close,
            volume=float(row.get("Volume", 0.0) or 0.0),
        ))
    if not points:
        raise MarketDataUnavailable(f"Price history for {symbol} has no closing prices")
    return PriceSeries(ticker=symbol, points=tuple(points))


def load_price_series(ticker: str, period: Optional[str] = None) -> PriceSeries:
    """Fetch daily bars (oldest first). Raises MarketDataUnavailable."""
    symbol = ticker.upper()
    period = period or get_config().trading.history_period
    try:
        hist = call_with_retry(_download_history, symbol, period)
        return history_to_series(symbol, hist)
    except MarketDataUnavailable:
        raise
    except Exception as e:
        raise MarketDataUnavailable(f"Failed to fetch price data for {symbol}: {e}", e) from e


def fetch_price_series(ticker: str, period: Optional[str] = None) -> PriceSeriesResult:
    try:
        return Ok(load_price_series(ticker, period))
    except MarketDataUnavailable as e:
        logger.warning(f"Price data unavailable for {ticker.upper()}: {e}")
        return Unavailable(source=e.source, reason=str(e))
