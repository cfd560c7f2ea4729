"""
Fibonacci structure validation.

Checks which side of the 61.8% retracement level price sits on, measuring
distance in ATR units so the check is volatility-normalized. A setup too
close to the level is VALID_FRAGILE and forces WAIT regardless of the
total score.
"""

from typing import Optional

import structlog

from src.strategy.models import FibCheck, StructureResult, TrendContext, is_number, round_points
from src.strategy.signal_config import SignalConfig

logger = structlog.get_logger(__name__)


def _swing_target(
    context: TrendContext,
    fib618: float,
    fib_end: Optional[float],
    fib_start: Optional[float],
) -> Optional[float]:
    """Swing target beyond the fib level, or None when unavailable."""
    if context == TrendContext.BULLISH:
        if is_number(fib_end) and fib_end > fib618:
            return fib_end
        return None
    if is_number(fib_start) and fib_start < fib618:
        return fib_start
    return None


def evaluate_structure(
    price: float,
    fib618: Optional[float],
    fib_end: Optional[float],
    fib_start: Optional[float],
    atr: Optional[float],
    context: TrendContext,
    config: SignalConfig,
) -> StructureResult:
    """
    Validate price position relative to the 61.8% Fibonacci level.

    Args:
        price: Current price
        fib618: Key retracement level
        fib_end: Swing end price (bullish target)
        fib_start: Swing start price (bearish target)
        atr: Average True Range, the unit of distance
        context: Trend context
        config: Signal configuration

    Returns:
        StructureResult; force_wait=True means the setup is fragile
    """
    if context == TrendContext.NEUTRAL or not is_number(fib618) or not is_number(atr) or atr == 0:
        return StructureResult(
            points=0,
            fib_check=FibCheck.INVALID,
            fib_value=fib618 if is_number(fib618) else 0.0,
            distance=0.0,
            distance_in_atr=0.0,
        )

    settings = config.structure
    weight = config.weights.structure
    distance = abs(price - fib618)
    distance_in_atr = distance / abs(atr)

    wrong_side = price < fib618 if context == TrendContext.BULLISH else price > fib618
    if wrong_side:
        points = 0
        if distance_in_atr <= settings.fib_tolerance_atr:
            remaining = 1 - distance_in_atr / settings.fib_tolerance_atr
            points = round_points(settings.wrong_side_ratio * weight * remaining)
        return StructureResult(
            points=points,
            fib_check=FibCheck.INVALID,
            fib_value=fib618,
            distance=distance,
            distance_in_atr=distance_in_atr,
        )

    fragile = distance_in_atr < settings.safe_zone_atr
    target = _swing_target(context, fib618, fib_end, fib_start)

    if settings.graded_decay and target is not None:
        progress = distance / abs(target - fib618)
        points = round_points(weight * (1 - progress)) if progress < 1 else 0
    else:
        points = 0 if fragile else round_points(weight)

    if fragile:
        logger.debug(
            "structure_fragile",
            price=price,
            fib_value=fib618,
            distance_in_atr=round(distance_in_atr, 3),
        )

    return StructureResult(
        points=points,
        fib_check=FibCheck.VALID_FRAGILE if fragile else FibCheck.VALID_SAFE,
        fib_value=fib618,
        distance=distance,
        distance_in_atr=distance_in_atr,
        force_wait=fragile,
    )
