"""Tests for fgsignal/evaluator.py"""

import numpy as np
import pytest

from fgsignal.evaluator import SignalEvaluator
from fgsignal.indicators import compute_indicators
from fgsignal.models import ExitTrigger, NoPosition, OpenPosition, SignalType

from tests.conftest import make_indicators, make_sentiment


@pytest.fixture
def evaluator():
    return SignalEvaluator()


class TestScenarios:

    def test_a_flat_closes_in_fear_buy(self, evaluator):
        ind = compute_indicators([100.0] * 20)
        signal = evaluator.evaluate(100.0, ind, make_sentiment("fear"), NoPosition())
        assert signal.type is SignalType.BUY
        assert signal.entry_condition_met
        assert signal.sentiment_condition_met
        assert signal.near_lower_band

    def test_b_all_time_high_exit(self, evaluator):
        ind = compute_indicators([100.0] * 20)
        signal = evaluator.evaluate(198.0, ind, make_sentiment("greed", 70), OpenPosition(100.0),
                                    all_time_high=200.0)
        assert signal.type is SignalType.SELL
        assert signal.exit_trigger is ExitTrigger.ALL_TIME_HIGH
        assert signal.sell_target == 200.0
        assert signal.entry_price == 100.0

    def test_c_threshold_met_but_not_profitable(self, evaluator):
        ind = compute_indicators([100.0] * 20)
        signal = evaluator.evaluate(198.0, ind, make_sentiment("greed", 70), OpenPosition(250.0),
                                    all_time_high=200.0)
        assert signal.type is SignalType.HOLD
        assert signal.exit_trigger is None
        assert "not in profit" in signal.reasoning
        assert "down 20.80%" in signal.reasoning


class TestEntry:

    def test_sma20_needs_lower_band_too(self, evaluator):
        ind = make_indicators(sma20=100.0, sma50=80.0, sma100=80.0, sma200=80.0, lower=90.0)
        signal = evaluator.evaluate(100.0, ind, make_sentiment("extreme fear", 10), NoPosition())
        assert signal.type is SignalType.HOLD
        assert not signal.entry_condition_met
        assert "Price condition not met" in signal.reasoning

    def test_sma20_with_lower_band(self, evaluator):
        ind = make_indicators(sma20=100.0, sma50=80.0, sma100=80.0, sma200=80.0, lower=99.5)
        signal = evaluator.evaluate(100.0, ind, make_sentiment("extreme_fear", 10), NoPosition())
        assert signal.type is SignalType.BUY
        assert "SMA20" in signal.reasoning

    def test_within_buffer_of_sma200(self, evaluator):
        ind = make_indicators(sma20=120.0, sma50=120.0, sma100=120.0, sma200=99.2, lower=95.0)
        checks = evaluator.check_entry(100.0, ind)
        assert checks.sma200 and checks.met
        assert not checks.sma20_and_band

    def test_greed_blocks_buy(self, evaluator):
        ind = make_indicators()
        signal = evaluator.evaluate(100.0, ind, make_sentiment("greed", 65), NoPosition())
        assert signal.type is SignalType.HOLD
        assert signal.entry_condition_met
        assert not signal.sentiment_condition_met
        assert "not in fear/extreme fear" in signal.reasoning

    def test_neutral_blocks_buy(self, evaluator):
        signal = evaluator.evaluate(100.0, make_indicators(), make_sentiment("neutral", 50), NoPosition())
        assert signal.type is SignalType.HOLD


class TestExit:

    def test_bollinger_exit(self, evaluator):
        ind = make_indicators(upper=120.0)
        signal = evaluator.evaluate(119.0, ind, make_sentiment("greed", 70), OpenPosition(100.0),
                                    all_time_high=300.0)
        assert signal.type is SignalType.SELL
        assert signal.exit_trigger is ExitTrigger.BOLLINGER_UPPER
        assert signal.sell_target == pytest.approx(121.2)
        assert "Bollinger Band upper target" in signal.reasoning

    def test_all_time_high_wins_tie(self, evaluator):
        ind = make_indicators(upper=150.0)
        signal = evaluator.evaluate(150.0, ind, make_sentiment("fear"), OpenPosition(100.0),
                                    all_time_high=150.0)
        assert signal.exit_trigger is ExitTrigger.ALL_TIME_HIGH

    def test_hold_names_unmet_targets(self, evaluator):
        ind = make_indicators(upper=150.0)
        signal = evaluator.evaluate(120.0, ind, make_sentiment("fear"), OpenPosition(100.0),
                                    all_time_high=200.0)
        assert signal.type is SignalType.HOLD
        assert signal.sell_target == 200.0
        assert signal.bollinger_sell_target == pytest.approx(151.5)
        assert "ATH (within 1%): $198.00 (65.00% away)" in signal.reasoning
        assert "BB upper (within 1%): $148.50" in signal.reasoning
        assert signal.reasoning.startswith("HOLD - You have an active position")

    def test_open_position_requires_ath(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.evaluate(120.0, make_indicators(), make_sentiment(), OpenPosition(100.0))


class TestProperties:

    def _random_cases(self, n=300):
        rng = np.random.default_rng(1234)
        ratings = ["extreme_fear", "fear", "neutral", "greed", "extreme_greed"]
        for _ in range(n):
            base = rng.uniform(50, 500)
            ind = make_indicators(
                sma20=base * rng.uniform(0.9, 1.1),
                sma50=base * rng.uniform(0.85, 1.15),
                sma100=base * rng.uniform(0.8, 1.2),
                sma200=base * rng.uniform(0.7, 1.3),
                upper=base * rng.uniform(1.02, 1.2),
                lower=base * rng.uniform(0.8, 0.98),
            )
            price = base * rng.uniform(0.75, 1.3)
            sentiment = make_sentiment(ratings[rng.integers(0, 5)], float(rng.uniform(0, 100)))
            yield price, ind, sentiment, rng

    def test_no_sell_without_position(self, evaluator):
        for price, ind, sentiment, _ in self._random_cases():
            signal = evaluator.evaluate(price, ind, sentiment, NoPosition())
            assert signal.type is not SignalType.SELL
            assert signal.exit_trigger is None

    def test_no_buy_with_position(self, evaluator):
        for price, ind, sentiment, rng in self._random_cases():
            position = OpenPosition(price * rng.uniform(0.5, 1.5))
            signal = evaluator.evaluate(price, ind, sentiment, position,
                                        all_time_high=price * rng.uniform(0.9, 1.5))
            assert signal.type is not SignalType.BUY

    def test_reasoning_matches_flags(self, evaluator):
        for price, ind, sentiment, _ in self._random_cases():
            signal = evaluator.evaluate(price, ind, sentiment, NoPosition())
            if signal.type is SignalType.BUY:
                assert signal.entry_condition_met and signal.sentiment_condition_met
                assert signal.reasoning.startswith("BUY signal triggered")
            else:
                assert not (signal.entry_condition_met and signal.sentiment_condition_met)
                assert ("Price condition not met" in signal.reasoning) == (not signal.entry_condition_met)
                assert ("not in fear/extreme fear" in signal.reasoning) == (not signal.sentiment_condition_met)
            assert signal.reasoning == ". ".join(signal.reasons) + "."

    def test_idempotent(self, evaluator):
        for price, ind, sentiment, _ in self._random_cases(50):
            first = evaluator.evaluate(price, ind, sentiment, OpenPosition(price * 0.9), price * 1.1)
            second = evaluator.evaluate(price, ind, sentiment, OpenPosition(price * 0.9), price * 1.1)
            assert first == second


class TestValidation:

    def test_nan_indicator(self, evaluator):
        ind = make_indicators(sma50=float("nan"))
        with pytest.raises(ValueError):
            evaluator.evaluate(100.0, ind, make_sentiment(), NoPosition())

    def test_non_positive_price(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.evaluate(0.0, make_indicators(), make_sentiment(), NoPosition())

    def test_unknown_state(self, evaluator):
        with pytest.raises(TypeError):
            evaluator.evaluate(100.0, make_indicators(), make_sentiment(), object())
