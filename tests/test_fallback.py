"""Tests for fgsignal/fallback.py"""

import pytest

from fgsignal.fallback import is_unavailable, unavailable_signal
from fgsignal.models import SignalType

from tests.conftest import make_sentiment


class TestUnavailableSignal:

    def test_both_missing(self):
        signal = unavailable_signal(None, "spy")
        assert signal.type is SignalType.HOLD
        assert signal.current_price == 0
        assert is_unavailable(signal)
        assert "Market data (SPY price and indicators) unavailable" in signal.reasoning
        assert "Fear & Greed Index data unavailable" in signal.reasoning
        assert not signal.entry_condition_met
        assert not signal.sentiment_condition_met

    def test_only_price_missing(self):
        signal = unavailable_signal(make_sentiment(), "QQQ")
        assert "QQQ price" in signal.reasoning
        assert "Fear & Greed" not in signal.reasoning

    def test_only_sentiment_missing(self):
        signal = unavailable_signal(None, "SPY", price_available=True)
        assert "Market data" not in signal.reasoning
        assert "Fear & Greed Index data unavailable" in signal.reasoning

    def test_indicators_zeroed(self):
        ind = unavailable_signal().indicators
        assert ind.sma20 == ind.bollinger_upper == ind.bollinger_lower == 0.0

    def test_nothing_missing_is_a_bug(self):
        with pytest.raises(ValueError):
            unavailable_signal(make_sentiment(), "SPY", price_available=True)
