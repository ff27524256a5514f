#!/usr/bin/env python3
"""
SIGNAL EVALUATOR - Turns price, indicators, sentiment and position into BUY / SELL / HOLD.

Per (user, ticker) there are two states, NO_POSITION and HAS_POSITION. The
evaluator only reads that state; moving between states happens when a user
confirms an execution (see service.SignalService.confirm_execution).

Entry (no position):
    A = (price <= SMA20*1.01 AND price <= lowerBB*1.01)
        OR price <= SMA50*1.01 OR price <= SMA100*1.01 OR price <= SMA200*1.01
    B = Fear & Greed rating is fear / extreme fear
    BUY when A and B, otherwise HOLD.

Exit (open position):
    SELL when in profit and price >= ATH*0.99 or price >= upperBB*0.99.
    The all-time-high check wins when both are reached.

Reasoning text is built only from the booleans stored on the Signal, so the
two can never disagree.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from .models import (
    ExitTrigger, IndicatorSet, NoPosition, OpenPosition, PositionState,
    SentimentReading, Signal, SignalType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryChecks:
    """Which legs of the entry formula matched."""
    sma20_and_band: bool
    sma50: bool
    sma100: bool
    sma200: bool
    near_lower_band: bool

    @property
    def met(self) -> bool:
        return self.sma20_and_band or self.sma50 or self.sma100 or self.sma200


@dataclass(frozen=True)
class ExitChecks:
    profit: float
    all_time_high: float
    ath_threshold: float
    band_threshold: float
    exit_by_high: bool
    exit_by_band: bool

    @property
    def in_profit(self) -> bool:
        return self.profit > 0

    @property
    def should_sell(self) -> bool:
        return self.in_profit and (self.exit_by_high or self.exit_by_band)

    @property
    def trigger(self) -> Optional[ExitTrigger]:
        if not self.should_sell:
            return None
        if self.exit_by_high:
            return ExitTrigger.ALL_TIME_HIGH
        return ExitTrigger.BOLLINGER_UPPER


def _pct_away(target: float, price: float) -> float:
    return (target - price) / price * 100


class SignalEvaluator:
    """Stateless evaluator. Safe to share across requests."""

    def __init__(self, entry_buffer: float = 0.01, exit_buffer: float = 0.01):
        self.entry_buffer = entry_buffer
        self.exit_buffer = exit_buffer

    # ── Conditions ───────────────────────────────────────────────────

    def check_entry(self, price: float, ind: IndicatorSet) -> EntryChecks:
        up = 1 + self.entry_buffer
        near_lower = price <= ind.bollinger_lower * up
        return EntryChecks(
            sma20_and_band=price <= ind.sma20 * up and near_lower,
            sma50=price <= ind.sma50 * up,
            sma100=price <= ind.sma100 * up,
            sma200=price <= ind.sma200 * up,
            near_lower_band=near_lower,
        )

    def check_exit(self, price: float, ind: IndicatorSet, entry_price: float,
                   all_time_high: float) -> ExitChecks:
        down = 1 - self.exit_buffer
        ath_threshold = all_time_high * down
        band_threshold = ind.bollinger_upper * down
        return ExitChecks(
            profit=price - entry_price,
            all_time_high=all_time_high,
            ath_threshold=ath_threshold,
            band_threshold=band_threshold,
            exit_by_high=price >= ath_threshold,
            exit_by_band=price >= band_threshold,
        )

    @staticmethod
    def check_sentiment(sentiment: SentimentReading) -> bool:
        return sentiment.is_fearful

    # ── Evaluation ───────────────────────────────────────────────────

    def evaluate(self, current_price: float, indicators: IndicatorSet,
                 sentiment: SentimentReading, position: PositionState,
                 all_time_high: Optional[float] = None) -> Signal:
        """
        Compute the recommendation for one ticker.

        Raises ValueError on structurally invalid input (missing indicators,
        non-positive price, open position without an all-time high). Unmet
        conditions are a HOLD, never an exception.
        """
        self._validate(current_price, indicators, sentiment)

        entry = self.check_entry(current_price, indicators)
        sentiment_ok = self.check_sentiment(sentiment)

        if isinstance(position, OpenPosition):
            if all_time_high is None or not math.isfinite(all_time_high):
                raise ValueError("all_time_high is required when a position is open")
            return self._evaluate_open(current_price, indicators, entry, sentiment_ok,
                                       position, all_time_high)
        if isinstance(position, NoPosition):
            return self._evaluate_flat(current_price, indicators, entry, sentiment_ok)
        raise TypeError(f"Unknown position state: {position!r}")

    def _evaluate_flat(self, price: float, ind: IndicatorSet, entry: EntryChecks,
                       sentiment_ok: bool) -> Signal:
        signal_type = SignalType.BUY if (entry.met and sentiment_ok) else SignalType.HOLD
        reasons = self._flat_reasons(signal_type, price, ind, entry, sentiment_ok)
        return Signal(
            type=signal_type,
            current_price=price,
            indicators=ind,
            entry_condition_met=entry.met,
            sentiment_condition_met=sentiment_ok,
            near_lower_band=entry.near_lower_band,
            reasoning=". ".join(reasons) + ".",
            reasons=tuple(reasons),
        )

    def _evaluate_open(self, price: float, ind: IndicatorSet, entry: EntryChecks,
                       sentiment_ok: bool, position: OpenPosition,
                       all_time_high: float) -> Signal:
        exit_ = self.check_exit(price, ind, position.entry_price, all_time_high)
        trigger = exit_.trigger
        bollinger_target = ind.bollinger_upper * (1 + self.exit_buffer)

        if trigger is None:
            signal_type = SignalType.HOLD
            sell_target = all_time_high
        elif trigger is ExitTrigger.ALL_TIME_HIGH:
            signal_type = SignalType.SELL
            sell_target = all_time_high
        else:
            signal_type = SignalType.SELL
            sell_target = bollinger_target

        reasons = self._open_reasons(signal_type, price, position.entry_price, exit_, trigger)
        return Signal(
            type=signal_type,
            current_price=price,
            indicators=ind,
            entry_condition_met=entry.met,
            sentiment_condition_met=sentiment_ok,
            near_lower_band=entry.near_lower_band,
            entry_price=position.entry_price,
            sell_target=sell_target,
            bollinger_sell_target=bollinger_target,
            exit_trigger=trigger,
            reasoning=". ".join(reasons) + ".",
            reasons=tuple(reasons),
        )

    # ── Reasoning ────────────────────────────────────────────────────

    @staticmethod
    def _flat_reasons(signal_type: SignalType, price: float, ind: IndicatorSet,
                      entry: EntryChecks, sentiment_ok: bool) -> List[str]:
        if signal_type is SignalType.BUY:
            parts = []
            if entry.sma20_and_band:
                parts.append(f"Price within 1% of SMA20 ({ind.sma20:.2f}) AND within 1% of "
                             f"BB lower ({ind.bollinger_lower:.2f})")
            if entry.sma50:
                parts.append(f"Price within 1% of SMA50 ({ind.sma50:.2f})")
            if entry.sma100:
                parts.append(f"Price within 1% of SMA100 ({ind.sma100:.2f})")
            if entry.sma200:
                parts.append(f"Price within 1% of SMA200 ({ind.sma200:.2f})")
            return [
                "BUY signal triggered",
                f"Entry condition met: {' OR '.join(parts)}",
                "Fear & Greed Index indicates fear/extreme fear",
            ]

        reasons = ["HOLD - Entry conditions not met"]
        if not entry.met:
            reasons.append(
                f"Price condition not met: price {price:.2f} is not within 1% of SMA20 and "
                f"BB lower, nor within 1% of SMA50/100/200"
            )
        else:
            reasons.append("Price condition met")
        if not sentiment_ok:
            reasons.append("Fear & Greed Index is not in fear/extreme fear")
        else:
            reasons.append("Fear & Greed Index indicates fear/extreme fear")
        return reasons

    @staticmethod
    def _open_reasons(signal_type: SignalType, price: float, entry_price: float,
                      exit_: ExitChecks, trigger: Optional[ExitTrigger]) -> List[str]:
        if signal_type is SignalType.SELL:
            if trigger is ExitTrigger.ALL_TIME_HIGH:
                target = "all-time high"
            else:
                target = "Bollinger Band upper target"
            return [
                "SELL signal triggered",
                f"Price within 1% or higher than {target}",
                f"Position in profit (entry ${entry_price:.2f}, currently ${price:.2f})",
            ]

        reasons = ["HOLD - You have an active position"]
        unmet = []
        if not exit_.exit_by_high:
            unmet.append(f"ATH (within 1%): ${exit_.ath_threshold:.2f} "
                         f"({_pct_away(exit_.ath_threshold, price):.2f}% away)")
        if not exit_.exit_by_band:
            unmet.append(f"BB upper (within 1%): ${exit_.band_threshold:.2f} "
                         f"({_pct_away(exit_.band_threshold, price):.2f}% away)")
        if unmet:
            reasons.append(f"Price has not reached the sell targets ({'; '.join(unmet)}), "
                           f"currently ${price:.2f}")
        else:
            reasons.append("Sell targets reached but the position is not in profit")

        if not exit_.in_profit:
            drawdown_pct = (entry_price - price) / entry_price * 100
            reasons.append(f"Holding until the position is back in profit (entry "
                           f"${entry_price:.2f}, currently ${price:.2f}, down {drawdown_pct:.2f}%)")
        return reasons

    # ── Validation ───────────────────────────────────────────────────

    @staticmethod
    def _validate(price: float, indicators: IndicatorSet,
                  sentiment: SentimentReading) -> None:
        if indicators is None:
            raise ValueError("indicators are required")
        if sentiment is None:
            raise ValueError("sentiment is required")
        if price is None or not math.isfinite(price) or price <= 0:
            raise ValueError(f"current price must be a positive number, got {price!r}")
        for name in ("sma20", "sma50", "sma100", "sma200",
                     "bollinger_upper", "bollinger_middle", "bollinger_lower"):
            value = getattr(indicators, name)
            if value is None or not math.isfinite(value):
                raise ValueError(f"indicator {name} is missing or not finite")
