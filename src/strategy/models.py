"""
Data model for the swing signal engine.

Indicator records arrive precomputed from the indicator service; the engine
reads them and produces an immutable Signal per coin per evaluation.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class StrategyMode(str, Enum):
    """Trading strategy variant an indicator record belongs to."""
    SWING = "swing"
    SCALP = "scalp"


class Decision(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    WAIT = "WAIT"


class TrendContext(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class AdxStrength(str, Enum):
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


class MaStructure(str, Enum):
    PERFECT = "PERFECT"
    PARTIAL = "PARTIAL"
    MESSY = "MESSY"


class PricePosition(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"
    AT = "AT"


class MomentumZone(str, Enum):
    HEALTHY = "HEALTHY"
    STRONG = "STRONG"
    OVERBOUGHT = "OVERBOUGHT"
    OVERSOLD = "OVERSOLD"
    WEAK = "WEAK"


class FibCheck(str, Enum):
    VALID_SAFE = "VALID_SAFE"
    VALID_FRAGILE = "VALID_FRAGILE"
    INVALID = "INVALID"


class RiskAssessment(str, Enum):
    SAFE = "SAFE"
    ELEVATED = "ELEVATED"
    EXTREME = "EXTREME"


def is_number(value: Optional[float]) -> bool:
    """True for finite numeric values (None and NaN count as missing)."""
    return value is not None and math.isfinite(value)


def round_points(value: float) -> int:
    """Round half up to whole points (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SwingIndicators:
    """Swing-trading indicator snapshot for one coin (4-hour timeframe)."""

    coin_id: str
    coin_symbol: str
    ma: Optional[float] = None
    ma50: Optional[float] = None
    ma100: Optional[float] = None
    ma200: Optional[float] = None
    adx: Optional[float] = None
    rsi: Optional[float] = None
    atr: Optional[float] = None
    fib_value: Optional[float] = None
    fib_trend: Optional[str] = None
    fib_start_price: Optional[float] = None
    fib_end_price: Optional[float] = None
    updated_at: Optional[datetime] = None

    REQUIRED_FIELDS = ("ma50", "ma100", "ma200", "adx", "rsi", "atr", "fib_value")

    def missing_fields(self) -> list[str]:
        """Names of required indicators that are absent or not finite."""
        return [name for name in self.REQUIRED_FIELDS if not is_number(getattr(self, name))]


# The signal engine consumes swing records
IndicatorRecord = SwingIndicators


@dataclass(frozen=True)
class ScalpIndicators:
    """Scalping indicator snapshot for one coin."""

    coin_id: str
    coin_symbol: str
    atr: Optional[float] = None
    vwap: Optional[float] = None
    bbands_upper: Optional[float] = None
    bbands_middle: Optional[float] = None
    bbands_lower: Optional[float] = None
    pivot_r3: Optional[float] = None
    pivot_r2: Optional[float] = None
    pivot_r1: Optional[float] = None
    pivot_p: Optional[float] = None
    pivot_s1: Optional[float] = None
    pivot_s2: Optional[float] = None
    pivot_s3: Optional[float] = None
    rsi: Optional[float] = None
    updated_at: Optional[datetime] = None


AnyIndicators = Union[SwingIndicators, ScalpIndicators]


@dataclass(frozen=True)
class CoinPrice:
    """Current market snapshot for a coin. Only current_price is required by the engine."""

    id: str
    symbol: str
    current_price: float
    name: str = ""
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_percent_24h: Optional[float] = None


@dataclass(frozen=True)
class TrendResult:
    context: TrendContext
    passed: bool
    points: int
    adx: float
    adx_strength: AdxStrength
    ma_structure: MaStructure
    price_vs_ma100: PricePosition


@dataclass(frozen=True)
class MomentumResult:
    points: int
    rsi: float
    zone: MomentumZone
    status: str


@dataclass(frozen=True)
class StructureResult:
    points: int
    fib_check: FibCheck
    fib_value: float
    distance: float
    distance_in_atr: float
    force_wait: bool = False


@dataclass(frozen=True)
class RiskResult:
    points: int
    assessment: RiskAssessment
    atr_percent: float
    stop_loss_risk: float
    force_wait: bool = False


@dataclass(frozen=True)
class TradeLevels:
    entry_price: float
    take_profit: float
    stop_loss: float


@dataclass(frozen=True)
class Signal:
    """Engine output for one coin at one evaluation."""

    coin: CoinPrice
    decision: Decision
    score: int  # 0 to 100
    show_in_ui: bool
    trend: TrendResult
    momentum: MomentumResult
    structure: StructureResult
    risk: RiskResult
    justification: str
    trade_levels: Optional[TradeLevels] = None
    breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.decision in (Decision.LONG, Decision.SHORT)
