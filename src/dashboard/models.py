"""Pydantic models for dashboard API requests and responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.strategy.models import StrategyMode


class TradeLevelsInfo(BaseModel):
    """Entry, take-profit and stop-loss for an actionable signal."""

    entry_price: float
    take_profit: float
    stop_loss: float


class SignalBreakdown(BaseModel):
    """Points contributed by each evaluator."""

    trend: int
    momentum: int
    structure: int
    risk: int


class StoredSignalInfo(BaseModel):
    """Latest stored signal for a coin."""

    coin_id: str
    coin_symbol: str
    decision: str
    score: int
    show_in_ui: bool
    price: float
    breakdown: SignalBreakdown
    trend_context: str
    trend_adx: Optional[float] = None
    trend_ma_structure: Optional[str] = None
    momentum_rsi: Optional[float] = None
    momentum_zone: Optional[str] = None
    structure_fib_check: Optional[str] = None
    structure_distance_in_atr: Optional[float] = None
    risk_assessment: Optional[str] = None
    risk_atr_percent: Optional[float] = None
    trade_levels: Optional[TradeLevelsInfo] = None
    justification: str
    calculated_at: str

    @classmethod
    def from_record(cls, record) -> "StoredSignalInfo":
        levels = None
        if record.entry_price is not None:
            levels = TradeLevelsInfo(
                entry_price=record.entry_price,
                take_profit=record.take_profit,
                stop_loss=record.stop_loss,
            )
        calculated_at: Optional[datetime] = record.calculated_at
        return cls(
            coin_id=record.coin_id,
            coin_symbol=record.coin_symbol,
            decision=record.decision,
            score=record.score,
            show_in_ui=record.show_in_ui,
            price=record.price,
            breakdown=SignalBreakdown(
                trend=record.trend_points,
                momentum=record.momentum_points,
                structure=record.structure_points,
                risk=record.risk_points,
            ),
            trend_context=record.trend_context,
            trend_adx=record.trend_adx,
            trend_ma_structure=record.trend_ma_structure,
            momentum_rsi=record.momentum_rsi,
            momentum_zone=record.momentum_zone,
            structure_fib_check=record.structure_fib_check,
            structure_distance_in_atr=record.structure_distance_in_atr,
            risk_assessment=record.risk_assessment,
            risk_atr_percent=record.risk_atr_percent,
            trade_levels=levels,
            justification=record.justification,
            calculated_at=calculated_at.isoformat() if calculated_at else "",
        )


class NotificationRecord(BaseModel):
    """Notification record for display."""

    id: int
    type: str
    title: str
    message: str
    coin_symbol: Optional[str] = None
    created_at: str


class AnalyzeRequest(BaseModel):
    """Body of POST /api/analyze."""

    symbol: str = Field(min_length=1, max_length=20)
    strategy: StrategyMode = StrategyMode.SWING


class AnalyzeResponse(BaseModel):
    symbol: str
    strategy: StrategyMode
    analysis: str
