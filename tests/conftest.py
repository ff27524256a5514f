"""Shared test fixtures for the signal engine tests."""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import MagicMock


def make_series(closes, ticker="SPY", highs=None, start=None, current_price=None):
    """Build a PriceSeries of daily bars from a list of closes."""
    from fgsignal.models import PricePoint, PriceSeries

    start = start or datetime(2025, 1, 2, tzinfo=timezone.utc)
    highs = highs if highs is not None else closes
    points = [
        PricePoint(
            timestamp=start + timedelta(days=i),
            open=c,
            high=h,
            low=c,
            close=c,
            volume=1_000_000,
        )
        for i, (c, h) in enumerate(zip(closes, highs))
    ]
    return PriceSeries(ticker=ticker, points=tuple(points), current_price=current_price)


def make_sentiment(rating="fear", score=30.0, **extra):
    from fgsignal.models import SentimentReading
    return SentimentReading(rating=rating, score=score, **extra)


def make_indicators(sma20=100.0, sma50=100.0, sma100=100.0, sma200=100.0,
                    upper=110.0, lower=90.0, degraded=()):
    from fgsignal.models import IndicatorSet
    return IndicatorSet(
        sma20=sma20,
        sma50=sma50,
        sma100=sma100,
        sma200=sma200,
        bollinger_upper=upper,
        bollinger_middle=sma20,
        bollinger_lower=lower,
        degraded_windows=tuple(degraded),
    )


def utc(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "fgsignal_test.db")


@pytest.fixture
def store(db_path):
    """Fresh SQLite store in a temp directory."""
    from fgsignal.store import SQLiteStore
    return SQLiteStore(db_path)


@pytest.fixture
def service(store):
    """SignalService on the temp store with network fetchers stubbed out."""
    from fgsignal.service import SignalService
    return SignalService(
        store=store,
        price_fetcher=MagicMock(name="price_fetcher"),
        sentiment_fetcher=MagicMock(name="sentiment_fetcher"),
    )


@pytest.fixture
def mock_supabase():
    """Mock Supabase client whose query builder chains back to itself."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "eq", "gte", "lt", "order", "limit", "insert", "upsert", "delete"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    client.table.return_value = query
    client.rpc.return_value.execute.return_value = MagicMock(data=None)
    client.query = query
    return client
