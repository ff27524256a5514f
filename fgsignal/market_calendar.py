#!/usr/bin/env python3
"""
MARKET CALENDAR - US stock market holidays and trading-day checks (UTC dates).

Fixed-date holidays that fall on a weekend are observed on the Friday before
(Saturday) or the Monday after (Sunday). Juneteenth counts from 2021.

Used by scheduled runs to skip days the market is closed.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)

MONDAY, THURSDAY = 0, 3


@dataclass(frozen=True)
class Holiday:
    name: str
    date: date
    observed: bool = False  # shifted off a weekend


def easter_sunday(year: int) -> date:
    """Anonymous Gregorian computus."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """n-th weekday (Monday=0) of a month; n=-1 for the last one."""
    if n == -1:
        nxt = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        last = nxt - timedelta(days=1)
        return last - timedelta(days=(last.weekday() - weekday) % 7)
    first = date(year, month, 1)
    return first + timedelta(days=(weekday - first.weekday()) % 7 + (n - 1) * 7)


def _observe(d: date) -> date:
    if d.weekday() == 5:
        return d - timedelta(days=1)
    if d.weekday() == 6:
        return d + timedelta(days=1)
    return d


@lru_cache(maxsize=32)
def holidays_for_year(year: int) -> Tuple[Holiday, ...]:
    fixed = [
        ("New Year's Day", date(year, 1, 1)),
        ("Independence Day", date(year, 7, 4)),
        ("Christmas Day", date(year, 12, 25)),
    ]
    if year >= 2021:
        fixed.append(("Juneteenth", date(year, 6, 19)))

    floating = [
        ("Martin Luther King Jr. Day", nth_weekday(year, 1, MONDAY, 3)),
        ("Presidents' Day", nth_weekday(year, 2, MONDAY, 3)),
        ("Good Friday", easter_sunday(year) - timedelta(days=2)),
        ("Memorial Day", nth_weekday(year, 5, MONDAY, -1)),
        ("Labor Day", nth_weekday(year, 9, MONDAY, 1)),
        ("Thanksgiving Day", nth_weekday(year, 11, THURSDAY, 4)),
    ]

    result = [Holiday(name, d) for name, d in floating]
    for name, d in fixed:
        observed = _observe(d)
        # A Saturday New Year's Day is not observed on Dec 31: the market stays open
        if observed.year != year:
            continue
        result.append(Holiday(name, observed, observed != d))
    return tuple(sorted(result, key=lambda h: h.date))


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def get_holiday(value: Union[date, datetime]) -> Optional[Holiday]:
    d = _as_date(value)
    for holiday in holidays_for_year(d.year):
        if holiday.date == d:
            return holiday
    return None


def is_trading_day(value: Union[date, datetime]) -> bool:
    """Weekday that is not a market holiday."""
    d = _as_date(value)
    if d.weekday() >= 5:
        return False
    holiday = get_holiday(d)
    if holiday is not None:
        logger.debug(f"{d} is {holiday.name}; market closed")
        return False
    return True
