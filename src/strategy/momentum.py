"""
RSI momentum scoring relative to the trend context.

Momentum has to agree with the trend direction. Strong trends tolerate
overbought/oversold readings (trend following); otherwise points decay
linearly away from the healthy band so there is no cliff at zone edges.
"""

from typing import Optional

from src.strategy.models import MomentumResult, MomentumZone, TrendContext, is_number, round_points
from src.strategy.signal_config import SignalConfig


def _decay(start: float, distance: float, span: float, floor: float) -> float:
    """Linear decay from start toward floor over span units of distance."""
    if distance <= 0:
        return start
    value = start - (start - floor) * (distance / span)
    return max(floor, value)


def evaluate_momentum(
    rsi: Optional[float],
    context: TrendContext,
    adx: Optional[float],
    config: SignalConfig,
) -> MomentumResult:
    """
    Score RSI against the trend context.

    Args:
        rsi: RSI value (0-100)
        context: Trend context from the trend evaluator
        adx: ADX value, used to detect strong trends
        config: Signal configuration

    Returns:
        MomentumResult with points, zone and a human-readable status
    """
    if context == TrendContext.NEUTRAL or not is_number(rsi):
        return MomentumResult(
            points=0,
            rsi=rsi if is_number(rsi) else 0.0,
            zone=MomentumZone.WEAK,
            status="No valid trend context",
        )

    settings = config.momentum
    weight = config.weights.momentum
    strong_trend = is_number(adx) and adx >= config.strong_trend_adx

    if settings.healthy_low <= rsi <= settings.healthy_high:
        direction = "bullish" if context == TrendContext.BULLISH else "bearish"
        return MomentumResult(
            points=round_points(weight),
            rsi=rsi,
            zone=MomentumZone.HEALTHY,
            status=f"Healthy {direction} momentum",
        )

    if context == TrendContext.BULLISH:
        if rsi > settings.healthy_high:
            if strong_trend:
                return MomentumResult(
                    points=round_points(settings.strong_trend_ratio * weight),
                    rsi=rsi,
                    zone=MomentumZone.STRONG,
                    status="Strong trend carrying elevated RSI",
                )
            points = _decay(
                settings.decay_start_ratio * weight,
                rsi - settings.healthy_high,
                settings.decay_span,
                settings.decay_floor,
            )
            overbought = rsi > settings.overbought
            return MomentumResult(
                points=round_points(points),
                rsi=rsi,
                zone=MomentumZone.OVERBOUGHT if overbought else MomentumZone.STRONG,
                status="Overbought warning" if overbought else "Strong bullish momentum",
            )
        return MomentumResult(
            points=0,
            rsi=rsi,
            zone=MomentumZone.WEAK,
            status="Weak momentum against bullish trend",
        )

    # Bearish: RSI below the band is the trend direction
    if rsi < settings.healthy_low:
        if strong_trend:
            return MomentumResult(
                points=round_points(settings.strong_trend_ratio * weight),
                rsi=rsi,
                zone=MomentumZone.STRONG,
                status="Strong trend carrying depressed RSI",
            )
        points = _decay(
            settings.decay_start_ratio * weight,
            settings.healthy_low - rsi,
            settings.decay_span,
            settings.decay_floor,
        )
        oversold = rsi < settings.oversold
        return MomentumResult(
            points=round_points(points),
            rsi=rsi,
            zone=MomentumZone.OVERSOLD if oversold else MomentumZone.STRONG,
            status="Oversold warning" if oversold else "Strong bearish momentum",
        )

    points = _decay(
        settings.counter_trend_ratio * weight,
        rsi - settings.healthy_high,
        settings.counter_trend_span,
        0.0,
    )
    return MomentumResult(
        points=round_points(points),
        rsi=rsi,
        zone=MomentumZone.WEAK,
        status="Weak bearish momentum",
    )
