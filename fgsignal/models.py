#!/usr/bin/env python3
"""
DOMAIN MODELS - Price data, indicators, sentiment, positions, executions, signals.

Everything here is a plain value object. Signals and indicator sets are
derived fresh on every evaluation and never persisted.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class SignalType(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Side(Enum):
    """Side of a user-confirmed execution."""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: Union[str, "Side"]) -> "Side":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown execution side: {value!r} (expected BUY or SELL)")


class ExitTrigger(Enum):
    ALL_TIME_HIGH = "ALL_TIME_HIGH"
    BOLLINGER_UPPER = "BOLLINGER_UPPER"


class SentimentRating(Enum):
    EXTREME_FEAR = "extreme_fear"
    FEAR = "fear"
    NEUTRAL = "neutral"
    GREED = "greed"
    EXTREME_GREED = "extreme_greed"

    @classmethod
    def parse(cls, value: Union[str, "SentimentRating"]) -> "SentimentRating":
        """Accepts "Extreme Fear", "extreme fear", "EXTREME_FEAR", "extreme-fear"."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown sentiment rating: {value!r}")

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


FEARFUL_RATINGS = frozenset({SentimentRating.FEAR, SentimentRating.EXTREME_FEAR})


# ── Market data ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class PricePoint:
    """One daily OHLCV bar."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class PriceSeries:
    """Historical bars for a ticker, ordered ascending by timestamp."""
    ticker: str
    points: Tuple[PricePoint, ...]
    current_price: Optional[float] = None

    def __post_init__(self):
        ordered = tuple(sorted(self.points, key=lambda p: p.timestamp))
        object.__setattr__(self, "points", ordered)
        object.__setattr__(self, "ticker", self.ticker.upper())
        if self.current_price is None and ordered:
            object.__setattr__(self, "current_price", ordered[-1].close)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def closes(self) -> Tuple[float, ...]:
        return tuple(p.close for p in self.points)

    @property
    def highs(self) -> Tuple[float, ...]:
        return tuple(p.high for p in self.points)


@dataclass(frozen=True)
class SentimentReading:
    """Fear & Greed reading: categorical rating plus a 0..100 score."""
    rating: SentimentRating
    score: float
    timestamp: Optional[str] = None
    previous_close: Optional[float] = None
    previous_1_week: Optional[float] = None
    previous_1_month: Optional[float] = None
    previous_1_year: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "rating", SentimentRating.parse(self.rating))
        if not 0 <= float(self.score) <= 100:
            raise ValueError(f"Sentiment score out of range 0..100: {self.score}")

    @property
    def is_fearful(self) -> bool:
        return self.rating in FEARFUL_RATINGS


# ── Indicators ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class IndicatorSet:
    sma20: float
    sma50: float
    sma100: float
    sma200: float
    bollinger_upper: float
    bollinger_middle: float  # == sma20
    bollinger_lower: float
    # SMA periods computed over fewer points than their nominal window
    degraded_windows: Tuple[int, ...] = ()

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_windows)

    @classmethod
    def zeros(cls) -> "IndicatorSet":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Positions & executions ───────────────────────────────────────────

@dataclass(frozen=True)
class Position:
    ticker: str
    entry_price: float
    opened_at: Optional[datetime] = None


@dataclass(frozen=True)
class ExecutionRecord:
    signal_type: Side
    ticker: str
    execution_price: float
    execution_date: datetime
    signal_price: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_type": self.signal_type.value,
            "ticker": self.ticker,
            "execution_price": self.execution_price,
            "signal_price": self.signal_price,
            "execution_date": self.execution_date.isoformat(),
        }


@dataclass(frozen=True)
class NoPosition:
    """The user holds nothing on the evaluated ticker (or no user was given)."""


@dataclass(frozen=True)
class OpenPosition:
    entry_price: float


PositionState = Union[NoPosition, OpenPosition]


def position_state(position: Optional[Position], ticker: str) -> PositionState:
    """Project a stored position onto the ticker being evaluated."""
    if position is None or position.ticker.upper() != ticker.upper():
        return NoPosition()
    return OpenPosition(entry_price=position.entry_price)


# ── Boundary results ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Unavailable:
    source: str
    reason: str


PriceSeriesResult = Union[Ok, Unavailable]
SentimentResult = Union[Ok, Unavailable]


# ── Signal ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Signal:
    """Result of one evaluation. Not persisted."""
    type: SignalType
    current_price: float
    indicators: IndicatorSet
    entry_condition_met: bool
    sentiment_condition_met: bool
    # Price within 1% of the lower band; informational, never gates a BUY
    near_lower_band: bool = False
    entry_price: Optional[float] = None
    sell_target: Optional[float] = None
    bollinger_sell_target: Optional[float] = None
    exit_trigger: Optional[ExitTrigger] = None
    reasoning: str = ""
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "current_price": self.current_price,
            "indicators": self.indicators.to_dict(),
            "entry_condition_met": self.entry_condition_met,
            "sentiment_condition_met": self.sentiment_condition_met,
            "near_lower_band": self.near_lower_band,
            "entry_price": self.entry_price,
            "sell_target": self.sell_target,
            "bollinger_sell_target": self.bollinger_sell_target,
            "exit_trigger": self.exit_trigger.value if self.exit_trigger else None,
            "reasoning": self.reasoning,
        }
