#!/usr/bin/env python3
"""
ERRORS - Typed failures raised by the signal engine.

HOLD is a normal result and never an error. Upstream and persistence
failures are converted to these types at the boundary so the evaluator
never sees a raw transport exception.
"""

from datetime import datetime
from typing import Optional


class SignalError(Exception):
    """Base class for all engine errors."""


class InsufficientDataError(SignalError):
    """Indicator math was given fewer price points than it needs."""

    def __init__(self, needed: int, got: int, what: str = "indicators"):
        self.needed = needed
        self.got = got
        super().__init__(
            f"Insufficient historical data for {what}: need at least {needed} points, got {got}"
        )


class UpstreamUnavailable(SignalError):
    """An upstream data source could not be retrieved."""

    source = "upstream"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class MarketDataUnavailable(UpstreamUnavailable):
    source = "price data"


class SentimentUnavailable(UpstreamUnavailable):
    source = "sentiment data"


class FrequencyLimitExceeded(SignalError):
    """A confirmed execution was already recorded this calendar month."""

    def __init__(self, user: str, last_execution_date: datetime,
                 next_allowed: datetime):
        self.user = user
        self.last_execution_date = last_execution_date
        self.next_allowed = next_allowed
        super().__init__(
            f"Only one execution per calendar month is allowed. Last execution was on "
            f"{last_execution_date:%Y-%m-%d}; next execution allowed from "
            f"{next_allowed:%Y-%m-%d}."
        )


class StoreOperationFailed(SignalError):
    """Wraps a persistence failure with the operation name and its cause."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None,
                 message: Optional[str] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(message or f"Store operation failed: {operation}{detail}")


class PositionConflict(StoreOperationFailed):
    """A second open position for the same (user, ticker) was rejected."""

    def __init__(self, operation: str, user: str, ticker: str,
                 cause: Optional[BaseException] = None):
        self.user = user
        self.ticker = ticker
        super().__init__(
            operation, cause,
            message=f"Position already open for {ticker}; close it before opening another",
        )


class PositionStateError(SignalError):
    """A confirmation contradicts the user's current position state."""
