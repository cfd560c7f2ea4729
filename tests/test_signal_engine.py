"""
Tests for the swing signal composer.

Tests cover:
- Reference scenarios (clean long, clean short, watchlist-only setups)
- Missing-data and trend gates (WAIT, score 0, hidden from UI)
- Force-wait overrides (fragile structure, unbounded risk)
- Trade level calculation (swing targets, ATR fallbacks, clamping)
- Score bounds, determinism, monotonicity in ADX
- Justification text
"""

import math

import pytest

from src.strategy.models import (
    Decision,
    FibCheck,
    MaStructure,
    RiskAssessment,
    TradeLevels,
    TrendContext,
)
from src.strategy.signal_config import DEFAULT_SIGNAL_CONFIG, SignalConfig
from src.strategy.signal_engine import calculate_signal, calculate_trade_levels


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def bullish_setup(make_indicators, make_coin):
    """Perfect bullish alignment, strong ADX, healthy RSI, price 115."""
    return make_indicators(), make_coin(115.0)


@pytest.fixture
def bearish_setup(make_indicators, make_coin):
    """Mirror of the bullish setup below the moving averages."""
    indicators = make_indicators(
        ma50=90.0,
        ma100=100.0,
        ma200=110.0,
        fib_value=105.0,
        fib_trend="down",
        fib_start_price=80.0,
        fib_end_price=130.0,
    )
    return indicators, make_coin(85.0)


# ============================================================================
# Reference scenarios
# ============================================================================

class TestReferenceScenarios:
    """End-to-end scoring with the default configuration."""

    def test_clean_long(self, bullish_setup):
        """40 trend + 25 momentum + 4 structure + 15 risk = 84 -> LONG."""
        indicators, coin = bullish_setup

        signal = calculate_signal(indicators, coin)

        assert signal.trend.context == TrendContext.BULLISH
        assert signal.trend.ma_structure == MaStructure.PERFECT
        assert signal.breakdown == {"trend": 40, "momentum": 25, "structure": 4, "risk": 15}
        assert signal.score == 84
        assert signal.decision == Decision.LONG
        assert signal.show_in_ui is True
        assert signal.structure.fib_check == FibCheck.VALID_SAFE
        assert signal.structure.distance_in_atr == pytest.approx(10.0)
        assert signal.risk.assessment == RiskAssessment.SAFE
        assert signal.trade_levels == TradeLevels(entry_price=115.0, take_profit=120.0, stop_loss=111.0)
        assert signal.is_actionable

    def test_clean_short(self, bearish_setup):
        """Bearish mirror scores the same and targets the swing start."""
        indicators, coin = bearish_setup

        signal = calculate_signal(indicators, coin)

        assert signal.trend.context == TrendContext.BEARISH
        assert signal.score == 84
        assert signal.decision == Decision.SHORT
        assert signal.trade_levels == TradeLevels(entry_price=85.0, take_profit=80.0, stop_loss=89.0)

    def test_watchlist_only(self, make_indicators, make_coin):
        """ADX at the floor gives 30 trend points: 74 total, visible but WAIT."""
        signal = calculate_signal(make_indicators(adx=20.0), make_coin(115.0))

        assert signal.trend.points == 30
        assert signal.score == 74
        assert signal.decision == Decision.WAIT
        assert signal.show_in_ui is True
        assert signal.trade_levels is None

    def test_below_watchlist_hidden(self, make_indicators, make_coin):
        """Counter-trend RSI and wrong-side structure keep the score low."""
        indicators = make_indicators(adx=20.0, rsi=30.0, fib_value=130.0)

        signal = calculate_signal(indicators, make_coin(115.0))

        assert signal.score < DEFAULT_SIGNAL_CONFIG.thresholds.watchlist
        assert signal.decision == Decision.WAIT
        assert signal.show_in_ui is False

    def test_no_swing_target_uses_full_structure(self, make_indicators, make_coin):
        """Without a swing target the structure check awards full points."""
        indicators = make_indicators(fib_end_price=None)

        signal = calculate_signal(indicators, make_coin(115.0))

        assert signal.structure.points == 20
        assert signal.score == 100
        assert signal.trade_levels.take_profit == pytest.approx(121.0)


# ============================================================================
# Gates
# ============================================================================

class TestGates:
    """Missing data and trend gate short-circuit to WAIT with score 0."""

    @pytest.mark.parametrize("field", ["ma50", "ma100", "ma200", "adx", "rsi", "atr", "fib_value"])
    def test_missing_required_field(self, make_indicators, make_coin, field):
        signal = calculate_signal(make_indicators(**{field: None}), make_coin(115.0))

        assert signal.decision == Decision.WAIT
        assert signal.score == 0
        assert signal.show_in_ui is False
        assert signal.trade_levels is None
        assert field in signal.justification

    def test_nan_counts_as_missing(self, make_indicators, make_coin):
        signal = calculate_signal(make_indicators(rsi=math.nan), make_coin(115.0))

        assert signal.decision == Decision.WAIT
        assert signal.score == 0
        assert "Insufficient data" in signal.justification

    def test_adx_below_minimum(self, make_indicators, make_coin):
        signal = calculate_signal(make_indicators(adx=15.0), make_coin(115.0))

        assert signal.trend.passed is False
        assert signal.decision == Decision.WAIT
        assert signal.score == 0
        assert signal.show_in_ui is False
        assert signal.momentum.points == 0
        assert "Trend filter not met" in signal.justification

    def test_custom_adx_minimum(self, make_indicators, make_coin):
        """Raising the ADX floor closes the gate for an otherwise valid setup."""
        config = SignalConfig.from_dict({"trend": {"adx_minimum": 50.0, "adx_strong": 60.0}})

        signal = calculate_signal(make_indicators(adx=45.0), make_coin(115.0), config)

        assert signal.decision == Decision.WAIT
        assert signal.score == 0


# ============================================================================
# Force-wait overrides
# ============================================================================

class TestForceWait:
    """Fragile structure or unbounded risk override the summed score."""

    def test_fragile_structure(self, make_indicators, make_coin):
        """Price 0.1 ATR above the fib level: strong setup still WAITs."""
        signal = calculate_signal(make_indicators(fib_value=114.8), make_coin(115.0))

        assert signal.structure.fib_check == FibCheck.VALID_FRAGILE
        assert signal.structure.force_wait is True
        assert signal.decision == Decision.WAIT
        assert signal.score == 0
        assert signal.show_in_ui is False
        assert signal.trade_levels is None
        # Sub-scores are kept for transparency
        assert signal.breakdown["trend"] == 40
        assert signal.breakdown["momentum"] == 25
        assert signal.breakdown["risk"] == 15
        assert "Fragile structure" in signal.justification

    def test_extreme_volatility(self, make_indicators, make_coin):
        """ATR of 8 on a 115 price implies a ~14% stop: WAIT."""
        signal = calculate_signal(make_indicators(atr=8.0), make_coin(115.0))

        assert signal.risk.assessment == RiskAssessment.EXTREME
        assert signal.risk.force_wait is True
        assert signal.decision == Decision.WAIT
        assert signal.score == 0
        assert "Extreme volatility" in signal.justification

    def test_extreme_volatility_within_stop_budget(self, make_indicators, make_coin):
        """EXTREME volatility only forces WAIT when the stop exceeds the budget."""
        config = SignalConfig.from_dict({"risk": {"max_stop_loss": 20.0}})

        signal = calculate_signal(make_indicators(atr=8.0), make_coin(115.0), config)

        assert signal.risk.force_wait is False
        assert signal.risk.points == 0
        assert signal.score == signal.trend.points + signal.momentum.points + signal.structure.points

    def test_zero_price_forces_wait(self, make_indicators, make_coin):
        signal = calculate_signal(make_indicators(), make_coin(0.0))

        assert signal.decision == Decision.WAIT
        assert signal.score == 0


# ============================================================================
# Trade levels
# ============================================================================

class TestTradeLevels:
    """Entry / take-profit / stop-loss calculation."""

    def test_wait_has_no_levels(self):
        assert calculate_trade_levels(Decision.WAIT, 100.0, 2.0, 90.0, 120.0) is None

    def test_long_fallback_when_target_below_entry(self):
        levels = calculate_trade_levels(Decision.LONG, 100.0, 2.0, 80.0, 95.0)

        assert levels.take_profit == pytest.approx(106.0)
        assert levels.stop_loss == pytest.approx(96.0)

    def test_short_fallback_when_target_above_entry(self):
        levels = calculate_trade_levels(Decision.SHORT, 85.0, 2.0, 90.0, 120.0)

        assert levels.take_profit == pytest.approx(79.0)
        assert levels.stop_loss == pytest.approx(89.0)

    def test_short_fallback_without_swing_start(self):
        levels = calculate_trade_levels(Decision.SHORT, 100.0, 2.0, None, None)

        assert levels.take_profit == pytest.approx(94.0)
        assert levels.stop_loss == pytest.approx(104.0)

    def test_levels_never_negative(self):
        short = calculate_trade_levels(Decision.SHORT, 1.0, 1.0, None, None)
        long = calculate_trade_levels(Decision.LONG, 1.0, 1.0, None, None)

        assert short.take_profit == 0.0
        assert long.stop_loss == 0.0


# ============================================================================
# Properties
# ============================================================================

class TestProperties:
    """Invariants that hold for every input."""

    def test_deterministic(self, bullish_setup):
        indicators, coin = bullish_setup

        assert calculate_signal(indicators, coin) == calculate_signal(indicators, coin)

    @pytest.mark.parametrize("rsi", [10.0, 35.0, 50.0, 65.0, 80.0, 95.0])
    @pytest.mark.parametrize("atr", [0.5, 2.0, 3.5, 4.5])
    @pytest.mark.parametrize("price", [96.0, 101.0, 115.0, 130.0])
    def test_score_bounds_and_consistency(self, make_indicators, make_coin, rsi, atr, price):
        signal = calculate_signal(make_indicators(rsi=rsi, atr=atr), make_coin(price))
        config = DEFAULT_SIGNAL_CONFIG

        assert 0 <= signal.score <= 100
        assert (signal.trade_levels is not None) == signal.is_actionable
        if signal.decision != Decision.WAIT:
            assert signal.score >= config.thresholds.action
        if not (signal.structure.force_wait or signal.risk.force_wait) and signal.trend.passed:
            assert signal.score == sum(signal.breakdown.values())
            assert signal.show_in_ui == (signal.score >= config.thresholds.watchlist)
        else:
            assert signal.score == 0
            assert signal.show_in_ui is False
        if signal.trade_levels is not None:
            assert signal.trade_levels.stop_loss >= 0
            assert signal.trade_levels.take_profit >= 0

    def test_trend_points_monotonic_in_adx(self, make_indicators, make_coin):
        previous = -1
        for adx in range(20, 41):
            signal = calculate_signal(make_indicators(adx=float(adx)), make_coin(115.0))
            assert signal.trend.points >= previous
            previous = signal.trend.points
        assert previous == 40


# ============================================================================
# Justification
# ============================================================================

class TestJustification:
    """Deterministic explanation text."""

    def test_actionable_verdict(self, bullish_setup):
        indicators, coin = bullish_setup

        signal = calculate_signal(indicators, coin)

        assert signal.justification.startswith("Bullish trend with perfect MA alignment.")
        assert "Score 84/100 supports LONG." in signal.justification

    def test_watchlist_verdict(self, make_indicators, make_coin):
        signal = calculate_signal(make_indicators(adx=20.0), make_coin(115.0))

        assert "suggests watchlist status" in signal.justification
