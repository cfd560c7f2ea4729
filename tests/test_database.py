"""
Tests for the Database state management module.

Tests cover:
- Indicator cache upserts, validation and freshness
- Signal history (append, latest per coin, score filtering)
- Notification log
- Session management (commit/rollback)
"""

import pytest
from datetime import datetime, timedelta, timezone
from dataclasses import replace

from src.state.database import Database, SignalRecord, SwingIndicatorCache
from src.state.indicators import IndicatorDecodeError
from src.strategy.models import Decision, ScalpIndicators, StrategyMode, SwingIndicators
from src.strategy.signal_engine import calculate_signal


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def db(db_path):
    """Initialize a fresh database instance for each test."""
    return Database(db_path)


@pytest.fixture
def swing_row():
    return {
        "coin_id": "bitcoin",
        "coin_symbol": "btc",
        "ma50": 110.0,
        "ma100": 100.0,
        "ma200": 90.0,
        "adx": 45.0,
        "rsi": 50.0,
        "atr": 2.0,
        "fib_value": 95.0,
        "fib_trend": "up",
        "fib_start_price": 80.0,
        "fib_end_price": 120.0,
    }


@pytest.fixture
def make_signal(make_indicators, make_coin):
    def _make(symbol="BTC", price=115.0, **overrides):
        coin_id = symbol.lower()
        signal = calculate_signal(
            make_indicators(coin_symbol=symbol, coin_id=coin_id),
            make_coin(price, symbol=symbol, coin_id=coin_id),
        )
        return replace(signal, **overrides) if overrides else signal
    return _make


# ============================================================================
# Initialization
# ============================================================================

def test_creates_parent_directory(db_path):
    assert not db_path.parent.exists()

    Database(db_path)

    assert db_path.exists()


def test_reopen_is_idempotent(db_path, swing_row):
    Database(db_path).upsert_indicators(StrategyMode.SWING, swing_row)

    record, _ = Database(db_path).get_indicators("BTC")

    assert record is not None


# ============================================================================
# Indicator cache
# ============================================================================

def test_upsert_and_get_indicators(db, swing_row):
    db.upsert_indicators(StrategyMode.SWING, swing_row)

    record, fresh = db.get_indicators("btc")

    assert isinstance(record, SwingIndicators)
    assert record.coin_symbol == "BTC"
    assert record.ma50 == 110.0
    assert record.fib_end_price == 120.0
    assert record.updated_at.tzinfo is not None
    assert fresh is True


def test_upsert_replaces_existing_row(db, swing_row):
    db.upsert_indicators(StrategyMode.SWING, swing_row)
    db.upsert_indicators(StrategyMode.SWING, {**swing_row, "adx": 22.0})

    record, _ = db.get_indicators("BTC")
    with db.session() as session:
        count = session.query(SwingIndicatorCache).count()

    assert record.adx == 22.0
    assert count == 1


def test_upsert_rejects_invalid_row(db, swing_row):
    with pytest.raises(IndicatorDecodeError) as exc_info:
        db.upsert_indicators(StrategyMode.SWING, {**swing_row, "rsi": "not-a-number"})

    assert exc_info.value.coin == "btc"
    assert db.get_indicators("BTC") == (None, False)


def test_missing_indicators(db):
    assert db.get_indicators("DOGE") == (None, False)


def test_stale_indicators(db, swing_row):
    old = datetime.now(timezone.utc) - timedelta(minutes=5)
    db.upsert_indicators(StrategyMode.SWING, {**swing_row, "updated_at": old})

    record, fresh = db.get_indicators("BTC")

    assert record is not None
    assert fresh is False


def test_custom_max_age(db, swing_row):
    old = datetime.now(timezone.utc) - timedelta(minutes=5)
    db.upsert_indicators(StrategyMode.SWING, {**swing_row, "updated_at": old})

    _, fresh = db.get_indicators("BTC", max_age=timedelta(hours=4))

    assert fresh is True


def test_scalp_indicators_are_separate(db, swing_row):
    db.upsert_indicators(StrategyMode.SWING, swing_row)
    db.upsert_indicators(
        StrategyMode.SCALP,
        {"coin_id": "bitcoin", "coin_symbol": "BTC", "vwap": 101.5, "pivot_p": 100.0},
    )

    scalp, _ = db.get_indicators("BTC", mode=StrategyMode.SCALP)
    swing, _ = db.get_indicators("BTC", mode=StrategyMode.SWING)

    assert isinstance(scalp, ScalpIndicators)
    assert scalp.vwap == 101.5
    assert swing.ma50 == 110.0


def test_list_indicator_rows_ordered(db, swing_row):
    for symbol in ("SOL", "BTC", "ETH"):
        db.upsert_indicators(StrategyMode.SWING, {**swing_row, "coin_symbol": symbol})

    rows = db.list_indicator_rows()

    assert [row.coin_symbol for row in rows] == ["BTC", "ETH", "SOL"]


# ============================================================================
# Signal history
# ============================================================================

def test_save_signal_persists_breakdown(db, make_signal):
    record = db.save_signal(make_signal())

    assert record.id is not None
    assert record.decision == "LONG"
    assert record.score == 84
    assert record.trend_points == 40
    assert record.structure_fib_check == "VALID_SAFE"
    assert record.risk_assessment == "SAFE"
    assert record.entry_price == 115.0
    assert record.take_profit == 120.0
    assert record.stop_loss == 111.0
    assert record.price == 115.0


def test_save_wait_signal_has_no_levels(db, make_signal):
    record = db.save_signal(make_signal(decision=Decision.WAIT, trade_levels=None))

    assert record.decision == "WAIT"
    assert record.entry_price is None
    assert record.take_profit is None
    assert record.stop_loss is None


def test_get_latest_signal(db, make_signal):
    db.save_signal(make_signal(score=60))
    db.save_signal(make_signal(score=84))

    latest = db.get_latest_signal("btc")

    assert latest.score == 84


def test_get_latest_signal_none(db):
    assert db.get_latest_signal("BTC") is None


def test_signals_are_append_only(db, make_signal):
    db.save_signal(make_signal())
    db.save_signal(make_signal())

    with db.session() as session:
        assert session.query(SignalRecord).count() == 2


def test_get_signals_by_score_uses_latest_per_coin(db, make_signal):
    db.save_signal(make_signal("BTC", score=90))
    db.save_signal(make_signal("BTC", score=55))
    db.save_signal(make_signal("ETH", score=80))
    db.save_signal(make_signal("SOL", score=30, show_in_ui=False))

    signals = db.get_signals_by_score(min_score=50)

    assert [(s.coin_symbol, s.score) for s in signals] == [("ETH", 80), ("BTC", 55)]


def test_get_signals_by_score_respects_min_and_limit(db, make_signal):
    for symbol, score in (("BTC", 90), ("ETH", 80), ("SOL", 70)):
        db.save_signal(make_signal(symbol, score=score))

    assert [s.coin_symbol for s in db.get_signals_by_score(min_score=75)] == ["BTC", "ETH"]
    assert [s.coin_symbol for s in db.get_signals_by_score(limit=1)] == ["BTC"]


def test_get_all_latest_signals(db, make_signal):
    db.save_signal(make_signal("ETH", score=80))
    db.save_signal(make_signal("BTC", score=20, show_in_ui=False))
    db.save_signal(make_signal("BTC", score=0, show_in_ui=False, decision=Decision.WAIT))

    latest = db.get_all_latest_signals()

    assert [(s.coin_symbol, s.score) for s in latest] == [("BTC", 0), ("ETH", 80)]


def test_signal_record_to_dict(db, make_signal):
    data = db.save_signal(make_signal()).to_dict()

    assert data["coin_symbol"] == "BTC"
    assert data["trend_context"] == "BULLISH"
    assert "calculated_at" in data


# ============================================================================
# Notifications
# ============================================================================

def test_save_and_get_notifications(db):
    db.save_notification("signal_alert", "BTC LONG", "Score 84", coin_symbol="btc", recipients=2)
    db.save_notification("error", "Job failed", "Timeout")

    notifications = db.get_recent_notifications()

    assert [n.title for n in notifications] == ["Job failed", "BTC LONG"]
    assert notifications[1].coin_symbol == "BTC"
    assert notifications[1].recipients == 2


def test_get_notifications_filtered_by_coin(db):
    db.save_notification("signal_alert", "BTC LONG", "a", coin_symbol="BTC")
    db.save_notification("signal_alert", "ETH SHORT", "b", coin_symbol="ETH")

    notifications = db.get_recent_notifications(coin_symbol="eth")

    assert [n.title for n in notifications] == ["ETH SHORT"]


def test_get_notifications_limit(db):
    for i in range(5):
        db.save_notification("signal_alert", f"alert {i}", "x")

    assert len(db.get_recent_notifications(limit=3)) == 3


# ============================================================================
# Session management
# ============================================================================

def test_session_rolls_back_on_error(db, swing_row):
    with pytest.raises(RuntimeError):
        with db.session() as session:
            session.add(SwingIndicatorCache(coin_id="bitcoin", coin_symbol="BTC"))
            session.flush()
            raise RuntimeError("boom")

    assert db.get_indicators("BTC") == (None, False)


def test_close_releases_connections_and_can_reconnect(db, make_signal):
    db.save_signal(make_signal())

    db.close()

    assert db.get_latest_signal("BTC").score == make_signal().score
