#!/usr/bin/env python3
"""
FREQUENCY LIMITER - At most one confirmed execution per user per calendar month.

The window is the UTC calendar month, not a rolling 30 days: a SELL on the
31st still allows a BUY on the 1st of the next month. The limit applies to
the user across every ticker.
"""

import calendar
import logging
from datetime import datetime, timezone
from typing import Optional

from .errors import FrequencyLimitExceeded
from .store import TradingStore, month_window

logger = logging.getLogger(__name__)


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def month_name(dt: datetime) -> str:
    """English month name of a date in UTC, e.g. "January"."""
    return calendar.month_name[_utc(dt).month]


class FrequencyLimiter:

    def __init__(self, store: TradingStore):
        self.store = store

    def _existing(self, user: str, now: Optional[datetime]):
        start, end = month_window(now or datetime.now(timezone.utc))
        return self.store.execution_in_window(user, start, end), end

    def can_record_execution(self, user: str, now: Optional[datetime] = None) -> bool:
        """
        True when the user has no execution anywhere in now's UTC month.

        Every execution dated inside that month counts, not only the newest
        one, so a backdated confirmation cannot slip past a later record.
        Store failures propagate as StoreOperationFailed; the limiter never
        fails open.
        """
        existing, _ = self._existing(user, now)
        return existing is None

    def next_allowed_date(self, user: str, now: Optional[datetime] = None) -> Optional[datetime]:
        """First day of the following month when blocked, None when allowed now."""
        existing, end = self._existing(user, now)
        return end if existing is not None else None

    def check(self, user: str, now: Optional[datetime] = None) -> None:
        """Raise FrequencyLimitExceeded if an execution already exists in now's month."""
        existing, end = self._existing(user, now)
        if existing is None:
            return
        logger.info(
            f"Execution for {user} rejected: already executed in "
            f"{month_name(existing.execution_date)} ({existing.execution_date:%Y-%m-%d})"
        )
        raise FrequencyLimitExceeded(str(user), existing.execution_date, end)
