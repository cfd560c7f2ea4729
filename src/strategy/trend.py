"""
Trend evaluation: the absolute gate of the swing signal engine.

Classifies market context from moving-average alignment and ADX trend
strength. Downstream evaluators only run when the trend passes; a failed
trend always yields WAIT with score 0.

Scoring (weights.trend = W):
- Perfect alignment (MA50 > MA100 > MA200 with price above MA100, or the
  bearish mirror): 75% of W at adx_minimum rising linearly to 100% at
  adx_strong and above.
- Relaxed recognition (optional): early/partial alignment earns 40% of W
  (65% when ADX is strong) plus small bonuses, capped just below W.
"""

from typing import Optional

import structlog

from src.strategy.models import (
    AdxStrength,
    IndicatorRecord,
    MaStructure,
    PricePosition,
    TrendContext,
    TrendResult,
    is_number,
    round_points,
)
from src.strategy.signal_config import SignalConfig

logger = structlog.get_logger(__name__)


def _price_vs(price: float, level: Optional[float]) -> PricePosition:
    if not is_number(level):
        return PricePosition.AT
    if price > level:
        return PricePosition.ABOVE
    if price < level:
        return PricePosition.BELOW
    return PricePosition.AT


def _gated(indicators: IndicatorRecord, price: float, adx: float, structure: MaStructure) -> TrendResult:
    return TrendResult(
        context=TrendContext.NEUTRAL,
        passed=False,
        points=0,
        adx=adx,
        adx_strength=AdxStrength.WEAK,
        ma_structure=structure,
        price_vs_ma100=_price_vs(price, indicators.ma100),
    )


def _perfect_points(adx: float, config: SignalConfig) -> int:
    weight = config.weights.trend
    floor = config.trend.perfect_floor_ratio * weight
    if adx >= config.trend.adx_strong:
        return round_points(weight)
    span = config.trend.adx_strong - config.trend.adx_minimum
    progress = max(0.0, (adx - config.trend.adx_minimum) / span)
    return round_points(floor + progress * (weight - floor))


def _partial_points(
    adx: float,
    beyond_ma200: bool,
    beyond_fib: bool,
    ma_aligned: bool,
    config: SignalConfig,
) -> int:
    settings = config.trend
    weight = config.weights.trend
    ratio = settings.partial_strong_ratio if adx >= settings.adx_strong else settings.partial_base_ratio
    points = ratio * weight
    if beyond_ma200:
        points += settings.bonus_above_ma200
    if beyond_fib:
        points += settings.bonus_beyond_fib
    if ma_aligned:
        points += settings.bonus_ma_alignment
    cap = max(0.0, weight - settings.partial_cap_margin)
    return round_points(min(points, cap))


def _relaxed_bullish(
    price: float, ma50: float, ma100: float, ma200: float, adx: float,
    fib: Optional[float], config: SignalConfig,
) -> bool:
    above_fib = is_number(fib) and price > fib
    return (
        (price > ma50 and above_fib and adx >= config.trend.adx_minimum)
        or (ma50 > ma100 and price > ma100)
        or (ma50 > ma200 and price > ma50)
        or (price > ma200 and adx >= config.trend.partial_adx_override)
    )


def _relaxed_bearish(
    price: float, ma50: float, ma100: float, ma200: float, adx: float,
    fib: Optional[float], config: SignalConfig,
) -> bool:
    below_fib = is_number(fib) and price < fib
    return (
        (price < ma50 and below_fib and adx >= config.trend.adx_minimum)
        or (ma50 < ma100 and price < ma100)
        or (ma50 < ma200 and price < ma50)
        or (price < ma200 and adx >= config.trend.partial_adx_override)
    )


def evaluate_trend(indicators: IndicatorRecord, price: float, config: SignalConfig) -> TrendResult:
    """
    Evaluate trend context and trend sub-score.

    Args:
        indicators: Indicator snapshot (MA50/100/200, ADX, fib level)
        price: Current price
        config: Signal configuration

    Returns:
        TrendResult; passed=False means the setup must be WAIT with score 0
    """
    ma50, ma100, ma200, adx = indicators.ma50, indicators.ma100, indicators.ma200, indicators.adx

    # Gate 1: missing data
    if not all(is_number(v) for v in (ma50, ma100, ma200, adx)):
        return _gated(indicators, price, adx if is_number(adx) else 0.0, MaStructure.MESSY)

    # Gate 2: no trend below the ADX floor
    if adx < config.trend.adx_minimum:
        return _gated(indicators, price, adx, MaStructure.MESSY)

    strength = AdxStrength.STRONG if adx >= config.trend.adx_strong else AdxStrength.MODERATE
    position = _price_vs(price, ma100)
    bullish_alignment = ma50 > ma100 > ma200
    bearish_alignment = ma50 < ma100 < ma200

    def _result(context: TrendContext, points: int, structure: MaStructure) -> TrendResult:
        return TrendResult(
            context=context,
            passed=True,
            points=points,
            adx=adx,
            adx_strength=strength,
            ma_structure=structure,
            price_vs_ma100=position,
        )

    if bullish_alignment and price > ma100:
        return _result(TrendContext.BULLISH, _perfect_points(adx, config), MaStructure.PERFECT)

    if bearish_alignment and price < ma100:
        return _result(TrendContext.BEARISH, _perfect_points(adx, config), MaStructure.PERFECT)

    fib = indicators.fib_value
    if config.trend.relaxed_reversal:
        if _relaxed_bullish(price, ma50, ma100, ma200, adx, fib, config):
            points = _partial_points(
                adx,
                beyond_ma200=price > ma200,
                beyond_fib=is_number(fib) and price > fib,
                ma_aligned=ma50 > ma100,
                config=config,
            )
            logger.debug("trend_partial_bullish", adx=adx, points=points)
            return _result(TrendContext.BULLISH, points, MaStructure.PARTIAL)

        if _relaxed_bearish(price, ma50, ma100, ma200, adx, fib, config):
            points = _partial_points(
                adx,
                beyond_ma200=price < ma200,
                beyond_fib=is_number(fib) and price < fib,
                ma_aligned=ma50 < ma100,
                config=config,
            )
            logger.debug("trend_partial_bearish", adx=adx, points=points)
            return _result(TrendContext.BEARISH, points, MaStructure.PARTIAL)

    # No context recognized; PARTIAL when MAs align but price is on the wrong side of MA100
    return TrendResult(
        context=TrendContext.NEUTRAL,
        passed=False,
        points=0,
        adx=adx,
        adx_strength=strength,
        ma_structure=MaStructure.PARTIAL if (bullish_alignment or bearish_alignment) else MaStructure.MESSY,
        price_vs_ma100=position,
    )
