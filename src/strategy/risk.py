"""
Volatility and stop-loss risk scoring (ATR as a percentage of price).

Low volatility (squeeze) is treated as favorable and scores like normal
volatility. Extreme volatility only forces WAIT when the implied
stop-loss distance exceeds the configured maximum.
"""

from typing import Optional

from src.strategy.models import RiskAssessment, RiskResult, is_number, round_points
from src.strategy.signal_config import SignalConfig


def evaluate_risk(atr: Optional[float], price: float, config: SignalConfig) -> RiskResult:
    """
    Score volatility and compute implied stop-loss risk.

    Args:
        atr: Average True Range in price units
        price: Current price
        config: Signal configuration

    Returns:
        RiskResult; force_wait=True when position risk cannot be bounded
    """
    if not is_number(atr) or atr == 0 or not is_number(price) or price <= 0:
        # Cannot size a position without volatility data
        return RiskResult(
            points=0,
            assessment=RiskAssessment.EXTREME,
            atr_percent=0.0,
            stop_loss_risk=0.0,
            force_wait=True,
        )

    settings = config.risk
    weight = config.weights.risk
    atr_percent = abs(atr) / price * 100
    stop_loss_risk = settings.stop_loss_atr * abs(atr) / price * 100

    if atr_percent > settings.volatility_extreme:
        return RiskResult(
            points=0,
            assessment=RiskAssessment.EXTREME,
            atr_percent=atr_percent,
            stop_loss_risk=stop_loss_risk,
            force_wait=stop_loss_risk > settings.max_stop_loss,
        )

    if atr_percent >= settings.volatility_elevated:
        return RiskResult(
            points=round_points(settings.elevated_ratio * weight),
            assessment=RiskAssessment.ELEVATED,
            atr_percent=atr_percent,
            stop_loss_risk=stop_loss_risk,
        )

    return RiskResult(
        points=round_points(weight),
        assessment=RiskAssessment.SAFE,
        atr_percent=atr_percent,
        stop_loss_risk=stop_loss_risk,
    )
