"""
Signal change detection for alert gating.

Compares a freshly computed signal with the last stored one for the same
coin. Only new actionable signals and decision changes into LONG/SHORT
should notify; persisting signals and exits to WAIT stay silent.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from src.strategy.models import Decision, Signal
from src.strategy.signal_config import DEFAULT_SIGNAL_CONFIG, SignalConfig


class ChangeType(str, Enum):
    NEW_SIGNAL = "NEW_SIGNAL"
    DECISION_CHANGE = "DECISION_CHANGE"
    SCORE_INCREASE = "SCORE_INCREASE"
    SCORE_DECREASE = "SCORE_DECREASE"
    NO_CHANGE = "NO_CHANGE"


class ThresholdBand(str, Enum):
    WATCHLIST = "WATCHLIST"
    ACTION = "ACTION"


class StoredSignalLike(Protocol):
    """Anything exposing the persisted decision and score (e.g. a SignalRecord row)."""

    decision: Union[str, Decision]
    score: int


@dataclass(frozen=True)
class SignalChange:
    coin_symbol: str
    change_type: ChangeType
    new_score: int
    new_decision: Decision
    old_score: Optional[int] = None
    old_decision: Optional[Decision] = None
    crossed_threshold: Optional[ThresholdBand] = None

    def to_dict(self) -> dict:
        return {
            "coin_symbol": self.coin_symbol,
            "change_type": self.change_type.value,
            "old_score": self.old_score,
            "new_score": self.new_score,
            "old_decision": self.old_decision.value if self.old_decision else None,
            "new_decision": self.new_decision.value,
            "crossed_threshold": self.crossed_threshold.value if self.crossed_threshold else None,
        }


def threshold_band(score: float, config: SignalConfig = DEFAULT_SIGNAL_CONFIG) -> Optional[ThresholdBand]:
    """Highest threshold band reached by a score, or None below watchlist."""
    if score >= config.thresholds.action:
        return ThresholdBand.ACTION
    if score >= config.thresholds.watchlist:
        return ThresholdBand.WATCHLIST
    return None


_BAND_RANK = {None: 0, ThresholdBand.WATCHLIST: 1, ThresholdBand.ACTION: 2}


def compare_signals(
    previous: Optional[StoredSignalLike],
    new: Signal,
    config: SignalConfig = DEFAULT_SIGNAL_CONFIG,
) -> SignalChange:
    """
    Classify how a new signal differs from the previously stored one.

    Args:
        previous: Last stored signal for the coin, or None
        new: Newly computed signal
        config: Configuration providing the watchlist/action thresholds

    Returns:
        SignalChange describing the transition
    """
    symbol = new.coin.symbol.upper()

    if previous is None:
        return SignalChange(
            coin_symbol=symbol,
            change_type=ChangeType.NEW_SIGNAL,
            new_score=new.score,
            new_decision=new.decision,
            crossed_threshold=threshold_band(new.score, config),
        )

    old_decision = Decision(previous.decision)
    old_score = int(previous.score)

    if old_decision != new.decision:
        return SignalChange(
            coin_symbol=symbol,
            change_type=ChangeType.DECISION_CHANGE,
            new_score=new.score,
            new_decision=new.decision,
            old_score=old_score,
            old_decision=old_decision,
        )

    old_band = threshold_band(old_score, config)
    new_band = threshold_band(new.score, config)
    if _BAND_RANK[new_band] > _BAND_RANK[old_band]:
        return SignalChange(
            coin_symbol=symbol,
            change_type=ChangeType.SCORE_INCREASE,
            new_score=new.score,
            new_decision=new.decision,
            old_score=old_score,
            old_decision=old_decision,
            crossed_threshold=new_band,
        )

    if old_score != new.score:
        return SignalChange(
            coin_symbol=symbol,
            change_type=ChangeType.SCORE_INCREASE if new.score > old_score else ChangeType.SCORE_DECREASE,
            new_score=new.score,
            new_decision=new.decision,
            old_score=old_score,
            old_decision=old_decision,
        )

    return SignalChange(
        coin_symbol=symbol,
        change_type=ChangeType.NO_CHANGE,
        new_score=new.score,
        new_decision=new.decision,
        old_score=old_score,
        old_decision=old_decision,
    )


def should_notify(change: SignalChange) -> bool:
    """Notify only for new or changed decisions that are LONG or SHORT."""
    if change.change_type not in (ChangeType.NEW_SIGNAL, ChangeType.DECISION_CHANGE):
        return False
    return change.new_decision in (Decision.LONG, Decision.SHORT)
