"""
Tunable thresholds and weights for the swing signal engine.

One process-wide default (DEFAULT_SIGNAL_CONFIG) is used unless the caller
supplies an override, e.g. from user settings. Every section is a frozen
dataclass and the whole configuration is validated on construction so a
bad override fails loudly instead of producing silently wrong scores.
"""

import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


class SignalConfigError(ValueError):
    """Raised when a signal configuration violates its numeric invariants."""


@dataclass(frozen=True)
class Thresholds:
    action: float = 75       # Minimum score for LONG/SHORT
    watchlist: float = 50    # Minimum score to show in UI


@dataclass(frozen=True)
class Weights:
    """Point budget per scoring dimension (must sum to 100)."""

    trend: float = 40
    momentum: float = 25
    structure: float = 20
    risk: float = 15

    @property
    def total(self) -> float:
        return self.trend + self.momentum + self.structure + self.risk


@dataclass(frozen=True)
class TrendSettings:
    adx_minimum: float = 20
    adx_strong: float = 35
    relaxed_reversal: bool = True
    # Perfect alignment scales from this share of the weight at adx_minimum to 100% at adx_strong
    perfect_floor_ratio: float = 0.75
    # Partial (relaxed) recognition
    partial_base_ratio: float = 0.40
    partial_strong_ratio: float = 0.65
    partial_adx_override: float = 30
    bonus_above_ma200: float = 5
    bonus_beyond_fib: float = 5
    bonus_ma_alignment: float = 3
    partial_cap_margin: float = 2


@dataclass(frozen=True)
class MomentumSettings:
    healthy_low: float = 40
    healthy_high: float = 60
    # None follows trend.adx_strong
    strong_trend_adx: Optional[float] = None
    strong_trend_ratio: float = 0.90
    decay_start_ratio: float = 0.80
    decay_span: float = 20
    decay_floor: float = 5
    overbought: float = 70
    oversold: float = 30
    counter_trend_ratio: float = 0.60
    counter_trend_span: float = 30


@dataclass(frozen=True)
class StructureSettings:
    fib_tolerance_atr: float = 5.0
    safe_zone_atr: float = 0.5
    graded_decay: bool = True
    wrong_side_ratio: float = 0.5


@dataclass(frozen=True)
class RiskSettings:
    max_stop_loss: float = 6.0          # Percent
    volatility_extreme: float = 4.0     # Percent ATR/price
    volatility_elevated: float = 2.5    # Percent ATR/price
    elevated_ratio: float = 0.5
    stop_loss_atr: float = 2.0
    take_profit_atr: float = 3.0


_SECTIONS = {
    "thresholds": Thresholds,
    "weights": Weights,
    "trend": TrendSettings,
    "momentum": MomentumSettings,
    "structure": StructureSettings,
    "risk": RiskSettings,
}


@dataclass(frozen=True)
class SignalConfig:
    """Complete signal engine configuration."""

    thresholds: Thresholds = field(default_factory=Thresholds)
    weights: Weights = field(default_factory=Weights)
    trend: TrendSettings = field(default_factory=TrendSettings)
    momentum: MomentumSettings = field(default_factory=MomentumSettings)
    structure: StructureSettings = field(default_factory=StructureSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def strong_trend_adx(self) -> float:
        """ADX at which momentum tolerates stretched RSI."""
        if self.momentum.strong_trend_adx is not None:
            return self.momentum.strong_trend_adx
        return self.trend.adx_strong

    def validate(self) -> None:
        """
        Check numeric invariants.

        Raises:
            SignalConfigError: If any field is negative or non-finite, the
                weights do not sum to 100, or threshold pairs are misordered.
        """
        for section_name in _SECTIONS:
            section = getattr(self, section_name)
            for f in fields(section):
                value = getattr(section, f.name)
                if value is None or isinstance(value, bool):
                    continue
                if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
                    raise SignalConfigError(
                        f"{section_name}.{f.name} must be a finite non-negative number, got {value!r}"
                    )

        if not math.isclose(self.weights.total, 100.0):
            raise SignalConfigError(f"weights must sum to 100, got {self.weights.total}")
        if self.thresholds.action < self.thresholds.watchlist:
            raise SignalConfigError(
                f"thresholds.action ({self.thresholds.action}) must be >= "
                f"thresholds.watchlist ({self.thresholds.watchlist})"
            )
        if self.thresholds.action > 100:
            raise SignalConfigError(f"thresholds.action must be <= 100, got {self.thresholds.action}")
        if self.trend.adx_strong <= self.trend.adx_minimum:
            raise SignalConfigError(
                f"trend.adx_strong ({self.trend.adx_strong}) must be > "
                f"trend.adx_minimum ({self.trend.adx_minimum})"
            )
        if self.momentum.healthy_low > self.momentum.healthy_high:
            raise SignalConfigError("momentum.healthy_low must be <= momentum.healthy_high")
        if self.momentum.decay_span <= 0 or self.momentum.counter_trend_span <= 0:
            raise SignalConfigError("momentum decay spans must be positive")
        if self.structure.fib_tolerance_atr <= 0:
            raise SignalConfigError("structure.fib_tolerance_atr must be positive")
        if self.risk.volatility_elevated > self.risk.volatility_extreme:
            raise SignalConfigError(
                f"risk.volatility_elevated ({self.risk.volatility_elevated}) must be <= "
                f"risk.volatility_extreme ({self.risk.volatility_extreme})"
            )
        if self.strong_trend_adx < self.trend.adx_minimum:
            raise SignalConfigError(
                f"momentum strong-trend ADX ({self.strong_trend_adx}) must be >= "
                f"trend.adx_minimum ({self.trend.adx_minimum})"
            )
        for name in ("perfect_floor_ratio", "partial_base_ratio", "partial_strong_ratio"):
            if getattr(self.trend, name) > 1:
                raise SignalConfigError(f"trend.{name} must be <= 1")

    def with_overrides(self, overrides: Optional[dict[str, Any]]) -> "SignalConfig":
        """
        Return a copy with nested overrides applied.

        Args:
            overrides: Mapping of section name to a mapping of field overrides,
                e.g. {"thresholds": {"action": 80}}. Unknown keys are rejected.

        Returns:
            New validated SignalConfig
        """
        if not overrides:
            return self

        sections = {}
        for section_name, values in overrides.items():
            if section_name not in _SECTIONS:
                raise SignalConfigError(f"Unknown signal config section: {section_name}")
            if not isinstance(values, dict):
                raise SignalConfigError(f"Section {section_name} must be a mapping")
            section = getattr(self, section_name)
            valid = {f.name for f in fields(section)}
            unknown = set(values) - valid
            if unknown:
                raise SignalConfigError(
                    f"Unknown fields for {section_name}: {sorted(unknown)}"
                )
            sections[section_name] = replace(section, **values)

        config = replace(self, **sections)
        logger.debug("signal_config_overridden", sections=sorted(sections))
        return config

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "SignalConfig":
        """Build a configuration from defaults plus partial overrides."""
        return cls().with_overrides(data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_SIGNAL_CONFIG = SignalConfig()
