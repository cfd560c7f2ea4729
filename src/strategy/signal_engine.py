"""
Swing signal engine.

Turns a coin's precomputed 4-hour indicators and current price into a
LONG/SHORT/WAIT decision with a 0-100 confidence score:

1. Missing data -> WAIT, score 0
2. Trend gate (MA alignment + ADX) -> WAIT, score 0 when it fails
3. Momentum (RSI), structure (Fibonacci) and risk (ATR) evaluation
4. Fragile structure or unbounded risk -> WAIT, score 0 (sub-scores kept)
5. Score = trend + momentum + structure + risk; LONG/SHORT at or above
   the action threshold, visible in the UI at or above the watchlist threshold

The engine is a pure function of (indicators, price, config): no I/O,
no shared state, and it never raises for business-logic reasons.
"""

from typing import Optional

import structlog

from src.strategy.models import (
    AdxStrength,
    CoinPrice,
    Decision,
    FibCheck,
    IndicatorRecord,
    MaStructure,
    MomentumResult,
    MomentumZone,
    PricePosition,
    RiskAssessment,
    RiskResult,
    Signal,
    StructureResult,
    TradeLevels,
    TrendContext,
    TrendResult,
    is_number,
)
from src.strategy.momentum import evaluate_momentum
from src.strategy.risk import evaluate_risk
from src.strategy.signal_config import DEFAULT_SIGNAL_CONFIG, SignalConfig
from src.strategy.structure import evaluate_structure
from src.strategy.trend import evaluate_trend

logger = structlog.get_logger(__name__)


def _wait_signal(
    coin: CoinPrice,
    trend: TrendResult,
    momentum: MomentumResult,
    structure: StructureResult,
    risk: RiskResult,
    justification: str,
) -> Signal:
    return Signal(
        coin=coin,
        decision=Decision.WAIT,
        score=0,
        show_in_ui=False,
        trend=trend,
        momentum=momentum,
        structure=structure,
        risk=risk,
        justification=justification,
        breakdown=_breakdown(trend, momentum, structure, risk),
    )


def _breakdown(
    trend: TrendResult,
    momentum: MomentumResult,
    structure: StructureResult,
    risk: RiskResult,
) -> dict[str, int]:
    return {
        "trend": trend.points,
        "momentum": momentum.points,
        "structure": structure.points,
        "risk": risk.points,
    }


def _value(value: Optional[float]) -> float:
    return value if is_number(value) else 0.0


def _missing_data_signal(indicators: IndicatorRecord, coin: CoinPrice, missing: list[str]) -> Signal:
    return _wait_signal(
        coin,
        TrendResult(
            context=TrendContext.NEUTRAL,
            passed=False,
            points=0,
            adx=_value(indicators.adx),
            adx_strength=AdxStrength.WEAK,
            ma_structure=MaStructure.MESSY,
            price_vs_ma100=PricePosition.AT,
        ),
        MomentumResult(points=0, rsi=_value(indicators.rsi), zone=MomentumZone.WEAK, status="Data missing"),
        StructureResult(
            points=0,
            fib_check=FibCheck.INVALID,
            fib_value=_value(indicators.fib_value),
            distance=0.0,
            distance_in_atr=0.0,
        ),
        RiskResult(points=0, assessment=RiskAssessment.EXTREME, atr_percent=0.0, stop_loss_risk=0.0),
        "Insufficient data: required indicators are missing "
        f"({', '.join(missing)}). Signal cannot be calculated. Wait until data is available.",
    )


def calculate_trade_levels(
    decision: Decision,
    price: float,
    atr: float,
    fib_start: Optional[float],
    fib_end: Optional[float],
    config: SignalConfig = DEFAULT_SIGNAL_CONFIG,
) -> Optional[TradeLevels]:
    """
    Compute entry, stop-loss and take-profit for an actionable decision.

    Stops sit stop_loss_atr x ATR away from entry. Take-profit uses the swing
    target when it lies beyond entry, else take_profit_atr x ATR.
    Returns None for WAIT.
    """
    if decision == Decision.WAIT:
        return None

    stop_distance = config.risk.stop_loss_atr * atr
    target_distance = config.risk.take_profit_atr * atr

    if decision == Decision.LONG:
        if is_number(fib_end) and fib_end > price:
            take_profit = fib_end
        else:
            take_profit = price + target_distance
        return TradeLevels(
            entry_price=price,
            take_profit=max(0.0, take_profit),
            stop_loss=max(0.0, price - stop_distance),
        )

    if is_number(fib_start) and fib_start < price:
        take_profit = fib_start
    else:
        take_profit = price - target_distance
    return TradeLevels(
        entry_price=price,
        take_profit=max(0.0, take_profit),
        stop_loss=max(0.0, price + stop_distance),
    )


_CONTEXT_LABELS = {
    TrendContext.BULLISH: "Bullish",
    TrendContext.BEARISH: "Bearish",
    TrendContext.NEUTRAL: "Neutral",
}

_ZONE_LABELS = {
    MomentumZone.HEALTHY: "healthy",
    MomentumZone.STRONG: "strong",
    MomentumZone.OVERBOUGHT: "overbought",
    MomentumZone.OVERSOLD: "oversold",
    MomentumZone.WEAK: "weak",
}


def build_justification(
    trend: TrendResult,
    momentum: MomentumResult,
    structure: StructureResult,
    risk: RiskResult,
    score: int,
    decision: Decision,
    config: SignalConfig = DEFAULT_SIGNAL_CONFIG,
) -> str:
    """Deterministic plain-language explanation of a scored signal."""
    context = _CONTEXT_LABELS[trend.context]
    parts = [
        f"{context} trend with {trend.ma_structure.value.lower()} MA alignment. "
        f"ADX {trend.adx:.1f} shows {trend.adx_strength.value.lower()} directional momentum.",
        f"RSI {momentum.rsi:.1f} sits in the {_ZONE_LABELS[momentum.zone]} zone for a "
        f"{context.lower()} context.",
    ]

    if structure.fib_check == FibCheck.VALID_SAFE:
        parts.append(
            f"Price is {structure.distance_in_atr:.2f} ATR from the key Fibonacci level, "
            "providing structural safety."
        )
    elif structure.fib_check == FibCheck.VALID_FRAGILE:
        parts.append("Fibonacci validation holds but is fragile.")
    else:
        parts.append("Fibonacci validation failed.")

    parts.append(f"Volatility {risk.atr_percent:.2f}% ({risk.assessment.value.lower()} environment).")

    if score >= config.thresholds.action:
        parts.append(f"Score {score}/100 supports {decision.value}. All structural criteria align.")
    elif score >= config.thresholds.watchlist:
        parts.append(
            f"Score {score}/100 suggests watchlist status. Setup exists but is not optimal; "
            "monitor for improvement."
        )
    else:
        parts.append(f"Score {score}/100 is insufficient for entry. Multiple criteria are below threshold.")

    return " ".join(parts)


def calculate_signal(
    indicators: IndicatorRecord,
    coin: CoinPrice,
    config: SignalConfig = DEFAULT_SIGNAL_CONFIG,
) -> Signal:
    """
    Calculate the trade signal for one coin.

    Args:
        indicators: Precomputed swing indicators
        coin: Current price snapshot
        config: Signal configuration (defaults to DEFAULT_SIGNAL_CONFIG)

    Returns:
        Signal with decision, score, sub-results, trade levels and justification
    """
    price = coin.current_price

    missing = indicators.missing_fields()
    if missing:
        logger.debug("signal_missing_data", symbol=coin.symbol, missing=missing)
        return _missing_data_signal(indicators, coin, missing)

    # Absolute gate
    trend = evaluate_trend(indicators, price, config)
    if not trend.passed:
        return _wait_signal(
            coin,
            trend,
            MomentumResult(points=0, rsi=indicators.rsi, zone=MomentumZone.WEAK, status="No valid trend"),
            StructureResult(
                points=0,
                fib_check=FibCheck.INVALID,
                fib_value=indicators.fib_value,
                distance=0.0,
                distance_in_atr=0.0,
            ),
            RiskResult(points=0, assessment=RiskAssessment.SAFE, atr_percent=0.0, stop_loss_risk=0.0),
            f"Trend filter not met. ADX below {config.trend.adx_minimum:g}, MA alignment invalid, "
            "or price not aligned with MA100. No trade setup available.",
        )

    momentum = evaluate_momentum(indicators.rsi, trend.context, indicators.adx, config)
    structure = evaluate_structure(
        price,
        indicators.fib_value,
        indicators.fib_end_price,
        indicators.fib_start_price,
        indicators.atr,
        trend.context,
        config,
    )
    risk = evaluate_risk(indicators.atr, price, config)

    if structure.force_wait or risk.force_wait:
        if structure.force_wait:
            justification = (
                f"Fragile structure detected. Price is {structure.distance_in_atr:.2f} ATR from the "
                f"critical Fibonacci level ({structure.fib_value:.2f}), too close to invalidation. "
                "Wait for a clearer setup."
            )
        else:
            justification = (
                f"Extreme volatility detected. ATR ratio {risk.atr_percent:.2f}% implies a "
                f"{risk.stop_loss_risk:.2f}% stop loss, beyond the acceptable risk limit. "
                "Wait for calmer conditions."
            )
        logger.debug(
            "signal_force_wait",
            symbol=coin.symbol,
            structure=structure.force_wait,
            risk=risk.force_wait,
        )
        return _wait_signal(coin, trend, momentum, structure, risk, justification)

    score = trend.points + momentum.points + structure.points + risk.points
    score = max(0, min(100, score))

    decision = Decision.WAIT
    if score >= config.thresholds.action:
        decision = Decision.LONG if trend.context == TrendContext.BULLISH else Decision.SHORT

    trade_levels = calculate_trade_levels(
        decision,
        price,
        indicators.atr,
        indicators.fib_start_price,
        indicators.fib_end_price,
        config,
    )

    return Signal(
        coin=coin,
        decision=decision,
        score=score,
        show_in_ui=score >= config.thresholds.watchlist,
        trend=trend,
        momentum=momentum,
        structure=structure,
        risk=risk,
        justification=build_justification(trend, momentum, structure, risk, score, decision, config),
        trade_levels=trade_levels,
        breakdown=_breakdown(trend, momentum, structure, risk),
    )
