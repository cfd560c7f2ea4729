"""
Pytest configuration and shared fixtures for signal desk tests.
"""

import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import MagicMock

# Silence structlog during tests
import structlog

from src.strategy.models import CoinPrice, SwingIndicators


def _mock_logger_factory(*args):
    """Factory that creates mock loggers for testing."""
    mock = MagicMock()
    # Configure mock methods to return the mock itself (for chaining)
    mock.bind.return_value = mock
    return mock


structlog.configure(
    processors=[],
    logger_factory=_mock_logger_factory,
)


# ============================================================================
# Shared Fixtures
# ============================================================================

@pytest.fixture
def make_indicators():
    """
    Build a SwingIndicators record.

    Defaults describe a clean bullish setup: perfect MA alignment, strong
    ADX, healthy RSI, price well above the 61.8% level.
    """
    def _make(**overrides) -> SwingIndicators:
        values = dict(
            coin_id="bitcoin",
            coin_symbol="BTC",
            ma50=110.0,
            ma100=100.0,
            ma200=90.0,
            adx=45.0,
            rsi=50.0,
            atr=2.0,
            fib_value=95.0,
            fib_trend="up",
            fib_start_price=80.0,
            fib_end_price=120.0,
        )
        values.update(overrides)
        return SwingIndicators(**values)
    return _make


@pytest.fixture
def make_coin():
    """Build a CoinPrice snapshot."""
    def _make(price: float = 115.0, symbol: str = "BTC", coin_id: str = "bitcoin") -> CoinPrice:
        return CoinPrice(id=coin_id, symbol=symbol, name=symbol, current_price=price)
    return _make


@pytest.fixture
def db_path(tmp_path):
    """Path for a throwaway SQLite database."""
    return tmp_path / "data" / "test_signals.db"
