"""
Schema-validated decoding of indicator cache rows.

Rows written by the external indicator job are validated once here and
turned into typed SwingIndicators / ScalpIndicators records, so nothing
downstream has to second-guess field types.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.strategy.models import AnyIndicators, ScalpIndicators, StrategyMode, SwingIndicators

# Rows older than this are recomputed rather than served from cache
DEFAULT_MAX_AGE = timedelta(minutes=1)


class IndicatorDecodeError(ValueError):
    """Raised when a stored indicator row fails schema validation."""

    def __init__(self, mode: StrategyMode, coin: str, detail: str):
        super().__init__(f"Invalid {mode.value} indicator row for {coin}: {detail}")
        self.mode = mode
        self.coin = coin
        self.detail = detail


class _IndicatorRow(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    coin_id: str
    coin_symbol: str
    updated_at: Optional[datetime] = None

    @field_validator("coin_symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("updated_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite drops tzinfo; stored timestamps are UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SwingIndicatorRow(_IndicatorRow):
    ma: Optional[float] = None
    ma50: Optional[float] = None
    ma100: Optional[float] = None
    ma200: Optional[float] = None
    atr: Optional[float] = None
    fib_value: Optional[float] = None
    fib_trend: Optional[str] = None
    fib_start_price: Optional[float] = None
    fib_end_price: Optional[float] = None
    rsi: Optional[float] = None
    adx: Optional[float] = None

    def to_record(self) -> SwingIndicators:
        return SwingIndicators(**self.model_dump())


class ScalpIndicatorRow(_IndicatorRow):
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

    def to_record(self) -> ScalpIndicators:
        return ScalpIndicators(**self.model_dump())


ROW_SCHEMAS: dict[StrategyMode, type[Union[SwingIndicatorRow, ScalpIndicatorRow]]] = {
    StrategyMode.SWING: SwingIndicatorRow,
    StrategyMode.SCALP: ScalpIndicatorRow,
}


def decode_indicator_row(row: Union[Mapping[str, Any], Any], mode: StrategyMode) -> AnyIndicators:
    """
    Validate a raw row (mapping or ORM object) and build the typed record.

    Args:
        row: Stored row
        mode: Strategy mode the row belongs to

    Returns:
        SwingIndicators or ScalpIndicators

    Raises:
        IndicatorDecodeError: If the row does not match the schema
    """
    schema = ROW_SCHEMAS[mode]
    try:
        if isinstance(row, Mapping):
            parsed = schema.model_validate(dict(row))
        else:
            parsed = schema.model_validate(row, from_attributes=True)
    except ValidationError as e:
        if isinstance(row, Mapping):
            coin = str(row.get("coin_symbol") or row.get("coin_id") or "unknown")
        else:
            coin = str(getattr(row, "coin_symbol", None) or "unknown")
        raise IndicatorDecodeError(mode, coin, str(e)) from e
    return parsed.to_record()


def is_cache_fresh(
    updated_at: Optional[datetime],
    now: Optional[datetime] = None,
    max_age: timedelta = DEFAULT_MAX_AGE,
) -> bool:
    """True when a row was updated less than max_age ago."""
    if updated_at is None:
        return False
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (now - updated_at) < max_age
