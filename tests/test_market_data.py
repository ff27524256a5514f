"""Tests for fgsignal/market_data.py and fgsignal/transport.py"""

from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from fgsignal.errors import MarketDataUnavailable
from fgsignal.market_data import fetch_price_series, history_to_series, load_price_series
from fgsignal.models import Ok, Unavailable
from fgsignal.transport import build_retry, call_with_retry, get_json, get_session, reset_session


def _history(n=30, start_price=100.0):
    idx = pd.date_range("2025-01-02", periods=n, freq="B", tz="America/New_York")
    closes = start_price + np.arange(n, dtype=float)
    return pd.DataFrame({
        "Open": closes - 0.5,
        "High": closes + 1.0,
        "Low": closes - 1.0,
        "Close": closes,
        "Volume": np.full(n, 1_000_000),
    }, index=idx)


class TestHistoryToSeries:

    def test_converts_frame(self):
        series = history_to_series("spy", _history(25))
        assert series.ticker == "SPY"
        assert len(series) == 25
        assert series.closes[0] == 100.0
        assert series.current_price == 124.0
        assert max(series.highs) == 125.0
        assert series.points[0].timestamp.tzinfo is not None

    def test_drops_missing_closes(self):
        hist = _history(22)
        hist.iloc[3, hist.columns.get_loc("Close")] = np.nan
        assert len(history_to_series("SPY", hist)) == 21


class TestFetchPriceSeries:

    @patch("fgsignal.market_data.yf.Ticker")
    def test_ok(self, mock_ticker):
        mock_ticker.return_value.history.return_value = _history(40)
        result = fetch_price_series("spy", period="6mo")
        assert isinstance(result, Ok)
        assert len(result.value) == 40
        mock_ticker.assert_called_with("SPY")
        assert mock_ticker.return_value.history.call_args[1]["period"] == "6mo"

    @patch("fgsignal.transport.time.sleep")
    @patch("fgsignal.market_data.yf.Ticker")
    def test_empty_history_unavailable(self, mock_ticker, _sleep):
        mock_ticker.return_value.history.return_value = pd.DataFrame()
        result = fetch_price_series("ZZZZ")
        assert isinstance(result, Unavailable)
        assert result.source == "price data"

    @patch("fgsignal.transport.time.sleep")
    @patch("fgsignal.market_data.yf.Ticker")
    def test_transient_error_retried(self, mock_ticker, _sleep):
        mock_ticker.return_value.history.side_effect = [ConnectionError("reset"), _history(20)]
        series = load_price_series("SPY")
        assert len(series) == 20

    @patch("fgsignal.transport.time.sleep")
    @patch("fgsignal.market_data.yf.Ticker")
    def test_persistent_error_raises(self, mock_ticker, _sleep):
        mock_ticker.return_value.history.side_effect = ConnectionError("down")
        with pytest.raises(MarketDataUnavailable):
            load_price_series("SPY")
        assert mock_ticker.return_value.history.call_count == 4


class TestCallWithRetry:

    def test_backoff_doubles(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=[ValueError("a"), ValueError("b"), "ok"])
        assert call_with_retry(fn, attempts=4, delay=1.0, backoff=2.0, sleep=sleep) == "ok"
        assert [c[0][0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up(self):
        fn = MagicMock(side_effect=ValueError("nope"))
        with pytest.raises(ValueError):
            call_with_retry(fn, attempts=3, delay=0.0, sleep=MagicMock())
        assert fn.call_count == 3

    def test_non_retryable_raised_immediately(self):
        fn = MagicMock(side_effect=KeyError("x"))
        with pytest.raises(KeyError):
            call_with_retry(fn, retry_on=(ValueError,), sleep=MagicMock())
        assert fn.call_count == 1


class TestSession:

    def test_retry_policy(self):
        retry = build_retry()
        assert retry.total == 3
        assert retry.backoff_factor == 1.0
        assert 429 in retry.status_forcelist
        assert 503 in retry.status_forcelist

    def test_session_mounts_retry_adapter(self):
        reset_session()
        session = get_session()
        assert session is get_session()
        assert session.get_adapter("https://example.com").max_retries.total == 3
        reset_session()

    def test_get_json_uses_timeout(self):
        reset_session()
        with patch("fgsignal.transport.requests.Session.get") as mock_get:
            mock_get.return_value.json.return_value = {"ok": True}
            assert get_json("https://example.test/x") == {"ok": True}
            assert mock_get.call_args[1]["timeout"] == 10.0
            mock_get.return_value.raise_for_status.assert_called_once()
        reset_session()
