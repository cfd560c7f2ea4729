"""
SQLite database for indicator cache, signal history and alert delivery.

Tables:
- swing_indicators: Latest swing indicators per coin (written by the indicator job)
- scalp_indicators: Latest scalp indicators per coin
- signals: Append-only history of every calculated signal
- notifications: Delivered alert log for the dashboard
"""

from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generator, Mapping, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    func,
    inspect,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

import structlog

from src.state.indicators import DEFAULT_MAX_AGE, decode_indicator_row, is_cache_fresh
from src.strategy.models import AnyIndicators, Signal, StrategyMode

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SwingIndicatorCache(Base):
    """Latest swing (4h) indicators for one coin."""

    __tablename__ = "swing_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coin_id = Column(String(100), nullable=False)
    coin_symbol = Column(String(20), nullable=False, unique=True)
    ma = Column(Float, nullable=True)
    ma50 = Column(Float, nullable=True)
    ma100 = Column(Float, nullable=True)
    ma200 = Column(Float, nullable=True)
    adx = Column(Float, nullable=True)
    rsi = Column(Float, nullable=True)
    atr = Column(Float, nullable=True)
    fib_value = Column(Float, nullable=True)  # 0.618 retracement
    fib_trend = Column(String(10), nullable=True)
    fib_start_price = Column(Float, nullable=True)  # Swing low
    fib_end_price = Column(Float, nullable=True)  # Swing high
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class ScalpIndicatorCache(Base):
    """Latest scalp indicators for one coin."""

    __tablename__ = "scalp_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coin_id = Column(String(100), nullable=False)
    coin_symbol = Column(String(20), nullable=False, unique=True)
    atr = Column(Float, nullable=True)
    vwap = Column(Float, nullable=True)
    bbands_upper = Column(Float, nullable=True)
    bbands_middle = Column(Float, nullable=True)
    bbands_lower = Column(Float, nullable=True)
    pivot_r3 = Column(Float, nullable=True)
    pivot_r2 = Column(Float, nullable=True)
    pivot_r1 = Column(Float, nullable=True)
    pivot_p = Column(Float, nullable=True)
    pivot_s1 = Column(Float, nullable=True)
    pivot_s2 = Column(Float, nullable=True)
    pivot_s3 = Column(Float, nullable=True)
    rsi = Column(Float, nullable=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


INDICATOR_TABLES: dict[StrategyMode, type] = {
    StrategyMode.SWING: SwingIndicatorCache,
    StrategyMode.SCALP: ScalpIndicatorCache,
}


class SignalRecord(Base):
    """One calculated signal with its full sub-score breakdown."""

    __tablename__ = "signals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coin_id = Column(String(100), nullable=False)
    coin_symbol = Column(String(20), nullable=False)
    decision = Column(String(10), nullable=False)  # LONG/SHORT/WAIT
    score = Column(Integer, nullable=False)
    show_in_ui = Column(Boolean, default=False, nullable=False)

    # Trend
    trend_context = Column(String(10), nullable=False)
    trend_points = Column(Integer, nullable=False)
    trend_adx = Column(Float, nullable=True)
    trend_adx_strength = Column(String(10), nullable=True)
    trend_ma_structure = Column(String(10), nullable=True)

    # Momentum
    momentum_points = Column(Integer, nullable=False)
    momentum_rsi = Column(Float, nullable=True)
    momentum_zone = Column(String(12), nullable=True)
    momentum_status = Column(String(100), nullable=True)

    # Structure
    structure_points = Column(Integer, nullable=False)
    structure_fib_check = Column(String(15), nullable=True)
    structure_fib_value = Column(Float, nullable=True)
    structure_distance = Column(Float, nullable=True)
    structure_distance_in_atr = Column(Float, nullable=True)

    # Risk
    risk_points = Column(Integer, nullable=False)
    risk_atr_percent = Column(Float, nullable=True)
    risk_assessment = Column(String(10), nullable=True)
    risk_stop_loss_risk = Column(Float, nullable=True)

    # Trade levels (null for WAIT)
    entry_price = Column(Float, nullable=True)
    take_profit = Column(Float, nullable=True)
    stop_loss = Column(Float, nullable=True)

    justification = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    calculated_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_signals_symbol_calculated", "coin_symbol", "calculated_at"),
        Index("ix_signals_score", "score"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Notification(Base):
    """Alert delivery history for dashboard display."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False)  # signal_alert, error, etc.
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    coin_symbol = Column(String(20), nullable=True)
    recipients = Column(Integer, default=0)
    created_at = Column(DateTime, default=_utcnow)


class Database:
    """
    Database manager for the signal desk.

    Handles:
    - Indicator cache reads and upserts
    - Signal history
    - Alert delivery log
    """

    def __init__(self, db_path: Path):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        db_path = Path(db_path).resolve()
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # create_all() is idempotent: creates missing tables, skips existing ones
        Base.metadata.create_all(self.engine)

        tables = inspect(self.engine).get_table_names()
        logger.info("database_initialized", path=str(db_path), tables=tables)

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
        logger.info("database_connections_closed")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic commit/rollback."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Indicator methods
    def upsert_indicators(self, mode: StrategyMode, row: Mapping[str, Any]) -> AnyIndicators:
        """
        Insert or replace the indicator row for a coin.

        The row is validated before it is written, so only well-formed
        records reach the table.

        Raises:
            IndicatorDecodeError: If the row fails validation
        """
        record = decode_indicator_row(row, mode)
        values = asdict(record)
        if values.get("updated_at") is None:
            values["updated_at"] = _utcnow()

        table = INDICATOR_TABLES[mode]
        with self.session() as session:
            existing = session.query(table).filter(table.coin_symbol == record.coin_symbol).first()
            if existing:
                for name, value in values.items():
                    setattr(existing, name, value)
            else:
                session.add(table(**values))

        logger.debug("indicators_upserted", mode=mode.value, symbol=record.coin_symbol)
        return decode_indicator_row(values, mode)

    def get_indicators(
        self,
        coin_symbol: str,
        mode: StrategyMode = StrategyMode.SWING,
        max_age: timedelta = DEFAULT_MAX_AGE,
    ) -> tuple[Optional[AnyIndicators], bool]:
        """
        Get cached indicators for a coin.

        Returns:
            (record or None, is_fresh) where is_fresh means updated within max_age
        """
        table = INDICATOR_TABLES[mode]
        with self.session() as session:
            row = session.query(table).filter(table.coin_symbol == coin_symbol.upper()).first()
            if row is None:
                return None, False
            record = decode_indicator_row(row, mode)
        return record, is_cache_fresh(record.updated_at, max_age=max_age)

    def list_indicator_rows(self, mode: StrategyMode = StrategyMode.SWING) -> list[Any]:
        """Raw indicator rows for every coin, ordered by symbol. Decoding is left to the caller."""
        table = INDICATOR_TABLES[mode]
        with self.session() as session:
            return session.query(table).order_by(table.coin_symbol.asc()).all()

    # Signal methods
    def save_signal(self, signal: Signal) -> SignalRecord:
        """Append a calculated signal to the history."""
        levels = signal.trade_levels
        with self.session() as session:
            record = SignalRecord(
                coin_id=signal.coin.id,
                coin_symbol=signal.coin.symbol.upper(),
                decision=signal.decision.value,
                score=signal.score,
                show_in_ui=signal.show_in_ui,
                trend_context=signal.trend.context.value,
                trend_points=signal.trend.points,
                trend_adx=signal.trend.adx,
                trend_adx_strength=signal.trend.adx_strength.value,
                trend_ma_structure=signal.trend.ma_structure.value,
                momentum_points=signal.momentum.points,
                momentum_rsi=signal.momentum.rsi,
                momentum_zone=signal.momentum.zone.value,
                momentum_status=signal.momentum.status,
                structure_points=signal.structure.points,
                structure_fib_check=signal.structure.fib_check.value,
                structure_fib_value=signal.structure.fib_value,
                structure_distance=signal.structure.distance,
                structure_distance_in_atr=signal.structure.distance_in_atr,
                risk_points=signal.risk.points,
                risk_atr_percent=signal.risk.atr_percent,
                risk_assessment=signal.risk.assessment.value,
                risk_stop_loss_risk=signal.risk.stop_loss_risk,
                entry_price=levels.entry_price if levels else None,
                take_profit=levels.take_profit if levels else None,
                stop_loss=levels.stop_loss if levels else None,
                justification=signal.justification,
                price=signal.coin.current_price,
            )
            session.add(record)
            session.flush()
            return record

    def get_latest_signal(self, coin_symbol: str) -> Optional[SignalRecord]:
        """Most recently stored signal for a coin."""
        with self.session() as session:
            return (
                session.query(SignalRecord)
                .filter(SignalRecord.coin_symbol == coin_symbol.upper())
                .order_by(SignalRecord.calculated_at.desc(), SignalRecord.id.desc())
                .first()
            )

    def _latest_ids(self, session: Session):
        return (
            session.query(func.max(SignalRecord.id).label("id"))
            .group_by(SignalRecord.coin_symbol)
            .subquery()
        )

    def get_signals_by_score(self, min_score: int = 50, limit: int = 100) -> list[SignalRecord]:
        """
        Latest visible signal per coin with score >= min_score.

        Args:
            min_score: Minimum score (inclusive)
            limit: Maximum number of rows

        Returns:
            Signals ordered by score, highest first
        """
        with self.session() as session:
            latest = self._latest_ids(session)
            return (
                session.query(SignalRecord)
                .join(latest, SignalRecord.id == latest.c.id)
                .filter(SignalRecord.show_in_ui == True)  # noqa: E712
                .filter(SignalRecord.score >= min_score)
                .order_by(SignalRecord.score.desc(), SignalRecord.coin_symbol.asc())
                .limit(limit)
                .all()
            )

    def get_all_latest_signals(self) -> list[SignalRecord]:
        """Latest signal for every coin, regardless of score."""
        with self.session() as session:
            latest = self._latest_ids(session)
            return (
                session.query(SignalRecord)
                .join(latest, SignalRecord.id == latest.c.id)
                .order_by(SignalRecord.coin_symbol.asc())
                .all()
            )

    # Notification methods
    def save_notification(
        self,
        type: str,
        title: str,
        message: str,
        coin_symbol: Optional[str] = None,
        recipients: int = 0,
    ) -> Notification:
        """Save a notification to the database."""
        with self.session() as session:
            notification = Notification(
                type=type,
                title=title,
                message=message,
                coin_symbol=coin_symbol.upper() if coin_symbol else None,
                recipients=recipients,
            )
            session.add(notification)
            session.flush()
            return notification

    def get_recent_notifications(
        self,
        limit: int = 50,
        coin_symbol: Optional[str] = None,
    ) -> list[Notification]:
        """Get recent notifications, newest first."""
        with self.session() as session:
            query = session.query(Notification)
            if coin_symbol is not None:
                query = query.filter(Notification.coin_symbol == coin_symbol.upper())
            return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
