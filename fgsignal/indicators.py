#!/usr/bin/env python3
"""
INDICATOR CALCULATOR - SMA 20/50/100/200 and Bollinger Bands from daily closes.

Pure functions: same closes in, same IndicatorSet out. Needs at least 20
closes; longer SMA windows fall back to every available close and are
reported in IndicatorSet.degraded_windows instead of failing.
"""

import logging
from typing import Sequence, Tuple

import numpy as np

from .config import TradingConfig, get_config
from .errors import InsufficientDataError
from .models import IndicatorSet

logger = logging.getLogger(__name__)

SMA_PERIODS = TradingConfig.sma_periods
BOLLINGER_PERIOD = 20
BOLLINGER_STDDEV = 2.0


def _as_array(closes: Sequence[float]) -> np.ndarray:
    arr = np.asarray(closes, dtype=float)
    if arr.ndim != 1:
        raise ValueError("closes must be a flat sequence of prices")
    if not np.all(np.isfinite(arr)):
        raise ValueError("closes contain NaN or infinite values")
    return arr


def sma(closes: Sequence[float], period: int) -> Tuple[float, bool]:
    """
    Mean of the last `period` closes.

    Returns (value, degraded). When fewer than `period` closes exist the mean
    covers all of them and degraded is True.
    """
    if period <= 0:
        raise ValueError(f"SMA period must be positive, got {period}")
    arr = _as_array(closes)
    if len(arr) == 0:
        raise InsufficientDataError(period, 0, what=f"SMA {period}")
    degraded = len(arr) < period
    window = arr if degraded else arr[-period:]
    return float(np.mean(window)), degraded


def bollinger_bands(closes: Sequence[float],
                    period: int = BOLLINGER_PERIOD,
                    std_dev: float = BOLLINGER_STDDEV) -> Tuple[float, float, float]:
    """Upper, middle, lower band over the last `period` closes (population σ)."""
    arr = _as_array(closes)
    if len(arr) < period:
        raise InsufficientDataError(period, len(arr), what="Bollinger Bands")
    window = arr[-period:]
    middle = float(np.mean(window))
    std = float(np.std(window))
    return middle + std_dev * std, middle, middle - std_dev * std


def compute_indicators(closes: Sequence[float]) -> IndicatorSet:
    """Build the full IndicatorSet from closes ordered oldest -> newest."""
    cfg = get_config().trading
    arr = _as_array(closes)
    if len(arr) < cfg.min_price_points:
        raise InsufficientDataError(cfg.min_price_points, len(arr))

    values = {}
    degraded = []
    for period in SMA_PERIODS:
        value, is_degraded = sma(arr, period)
        values[period] = value
        if is_degraded:
            degraded.append(period)

    upper, _, lower = bollinger_bands(arr, cfg.bollinger_period, cfg.bollinger_stddev)

    if degraded:
        logger.debug(f"SMA windows {degraded} computed over {len(arr)} points only")

    return IndicatorSet(
        sma20=values[20],
        sma50=values[50],
        sma100=values[100],
        sma200=values[200],
        bollinger_upper=upper,
        # Middle band is SMA20 by definition; reuse the same float
        bollinger_middle=values[20],
        bollinger_lower=lower,
        degraded_windows=tuple(degraded),
    )


def all_time_high(highs: Sequence[float]) -> float:
    """Highest high over the supplied history window."""
    arr = _as_array(highs)
    if len(arr) == 0:
        raise InsufficientDataError(1, 0, what="all-time high")
    return float(np.max(arr))
