"""
Periodic signal calculation job.

Handles:
- Loading and validating cached swing indicators for every coin
- Fan-out of per-coin evaluation across a bounded worker pool
- Persisting each signal before comparing it with the previous one
- Alert dispatch for new or changed actionable signals

Each coin is processed in a fixed order: price -> previous signal ->
calculate -> save -> compare -> notify. One coin failing never stops the
others; its error is collected in the run summary.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import structlog

from src.notifications.email import EmailNotifier
from src.state.database import Database
from src.state.indicators import DEFAULT_MAX_AGE, IndicatorDecodeError, decode_indicator_row, is_cache_fresh
from src.strategy.models import CoinPrice, IndicatorRecord, StrategyMode
from src.strategy.signal_change import SignalChange, compare_signals, should_notify
from src.strategy.signal_config import DEFAULT_SIGNAL_CONFIG, SignalConfig
from src.strategy.signal_engine import calculate_signal

logger = structlog.get_logger(__name__)


class PriceSource(Protocol):
    """Anything that can produce a current price snapshot for a coin."""

    def get_coin_price(self, symbol: str, coin_id: Optional[str] = None) -> CoinPrice:
        ...


@dataclass
class JobConfig:
    """Configuration for the signal job."""

    max_workers: int = 4
    alert_recipients: list[str] = field(default_factory=list)
    indicator_max_age: timedelta = DEFAULT_MAX_AGE


@dataclass(frozen=True)
class CoinError:
    coin: str
    stage: str  # decode, price, previous, calculate, save, compare
    error: str

    def to_dict(self) -> dict:
        return {"coin": self.coin, "stage": self.stage, "error": self.error}


@dataclass
class CoinOutcome:
    coin: str
    score: int
    decision: str
    change: SignalChange
    notified: bool = False
    notify_failed: bool = False


@dataclass
class JobSummary:
    """Result of one job run."""

    processed: int = 0
    successful: int = 0
    failed: int = 0
    stale_indicators: int = 0
    alerts_sent: int = 0
    alert_failures: int = 0
    changes: list[SignalChange] = field(default_factory=list)
    errors: list[CoinError] = field(default_factory=list)
    skipped: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "stale_indicators": self.stale_indicators,
            "alerts_sent": self.alerts_sent,
            "alert_failures": self.alert_failures,
            "changes": [c.to_dict() for c in self.changes],
            "errors": [e.to_dict() for e in self.errors],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SignalJob:
    """
    Runs the signal engine for every coin with cached indicators.

    Responsibilities:
    - Decode indicator rows at the storage boundary
    - Evaluate coins concurrently, isolating per-coin failures
    - Keep the save-then-compare order so alerts reflect persisted state
    - Refuse overlapping runs
    """

    def __init__(
        self,
        db: Database,
        price_source: PriceSource,
        notifier: Optional[EmailNotifier] = None,
        signal_config: SignalConfig = DEFAULT_SIGNAL_CONFIG,
        config: Optional[JobConfig] = None,
    ):
        """
        Initialize signal job.

        Args:
            db: Database holding indicators and signal history
            price_source: Client providing current prices
            notifier: Optional email notifier for alerts
            signal_config: Engine configuration
            config: Job configuration
        """
        self.db = db
        self.price_source = price_source
        self.notifier = notifier
        self.signal_config = signal_config
        self.config = config or JobConfig()
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> JobSummary:
        """
        Calculate, store and (where warranted) alert on signals for all coins.

        Returns:
            JobSummary; skipped=True when another run is in progress
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("signal_job_already_running")
            summary = JobSummary(skipped=True)
            summary.finished_at = summary.started_at
            return summary

        try:
            return self._run()
        finally:
            self._run_lock.release()

    def _load_indicators(self, summary: JobSummary) -> list[IndicatorRecord]:
        records: list[IndicatorRecord] = []
        now = datetime.now(timezone.utc)
        for row in self.db.list_indicator_rows(StrategyMode.SWING):
            try:
                record = decode_indicator_row(row, StrategyMode.SWING)
            except IndicatorDecodeError as e:
                summary.errors.append(CoinError(coin=e.coin, stage="decode", error=e.detail))
                logger.warning("indicator_row_invalid", coin=e.coin, error=e.detail)
                continue
            if not is_cache_fresh(record.updated_at, now=now, max_age=self.config.indicator_max_age):
                summary.stale_indicators += 1
            records.append(record)
        return records

    def _run(self) -> JobSummary:
        summary = JobSummary()
        logger.info("signal_job_started", started_at=summary.started_at.isoformat())

        records = self._load_indicators(summary)
        summary.processed = len(records) + len(summary.errors)

        if not records:
            summary.failed = len(summary.errors)
            summary.finished_at = datetime.now(timezone.utc)
            logger.info("signal_job_no_coins", invalid_rows=summary.failed)
            return summary

        outcomes: list[CoinOutcome] = []
        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="signal") as pool:
            futures = {pool.submit(self._process_coin, record): record.coin_symbol for record in records}
            for future in as_completed(futures):
                result = future.result()
                if isinstance(result, CoinError):
                    summary.errors.append(result)
                else:
                    outcomes.append(result)

        outcomes.sort(key=lambda o: o.coin)
        summary.errors.sort(key=lambda e: e.coin)

        summary.successful = len(outcomes)
        summary.failed = len(summary.errors)
        summary.alerts_sent = sum(1 for o in outcomes if o.notified)
        summary.alert_failures = sum(1 for o in outcomes if o.notify_failed)
        summary.changes = [o.change for o in outcomes if should_notify(o.change)]
        summary.finished_at = datetime.now(timezone.utc)

        logger.info(
            "signal_job_completed",
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
            stale_indicators=summary.stale_indicators,
            alerts_sent=summary.alerts_sent,
            alert_failures=summary.alert_failures,
        )
        return summary

    def _process_coin(self, indicators: IndicatorRecord):
        """Evaluate one coin. Returns CoinOutcome, or CoinError on failure."""
        symbol = indicators.coin_symbol
        stage = "price"
        try:
            coin = self.price_source.get_coin_price(symbol, coin_id=indicators.coin_id)

            stage = "previous"
            previous = self.db.get_latest_signal(symbol)

            stage = "calculate"
            signal = calculate_signal(indicators, coin, self.signal_config)

            stage = "save"
            self.db.save_signal(signal)

            stage = "compare"
            change = compare_signals(previous, signal, self.signal_config)
            outcome = CoinOutcome(
                coin=symbol,
                score=signal.score,
                decision=signal.decision.value,
                change=change,
            )
            notify = should_notify(change)
        except Exception as e:
            logger.error("signal_coin_failed", coin=symbol, stage=stage, error=str(e))
            return CoinError(coin=symbol, stage=stage, error=str(e))

        logger.debug(
            "signal_calculated",
            coin=symbol,
            decision=signal.decision.value,
            score=signal.score,
            change=change.change_type.value,
        )

        if notify:
            self._notify(signal, outcome)
        return outcome

    def _notify(self, signal, outcome: CoinOutcome) -> None:
        if not self.notifier or not self.config.alert_recipients:
            logger.debug("signal_alert_skipped", coin=outcome.coin, reason="no_notifier")
            return
        try:
            sent = self.notifier.send_signal_alert(
                self.config.alert_recipients,
                outcome.coin,
                signal.decision,
                signal.score,
                signal.coin.current_price,
                signal.justification,
            )
        except Exception as e:
            logger.error("signal_alert_failed", coin=outcome.coin, error=str(e))
            sent = False
        outcome.notified = sent
        outcome.notify_failed = not sent
